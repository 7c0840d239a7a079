from challans.services.challan_service import (
    ChallanService,
    OperationResult,
    build_challan_service,
)

__all__ = ["ChallanService", "OperationResult", "build_challan_service"]
