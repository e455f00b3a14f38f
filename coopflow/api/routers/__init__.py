from . import approvals

__all__ = ["approvals"]
