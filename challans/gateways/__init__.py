from challans.gateways.interfaces import PaymentGateway
from challans.gateways.simulated import GatewayRegistry, SimulatedGateway, default_gateways

__all__ = [
    "PaymentGateway",
    "GatewayRegistry",
    "SimulatedGateway",
    "default_gateways",
]
