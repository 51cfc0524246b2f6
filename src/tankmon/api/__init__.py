from .http import OperatorApi, create_app

__all__ = ["OperatorApi", "create_app"]
