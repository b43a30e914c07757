from .gateway import MidtransPaymentGateway, build_snap_payload

__all__ = ["MidtransPaymentGateway", "build_snap_payload"]
