from .handler import create_lambda_handler, create_lifecycle_manager

__all__ = ["create_lifecycle_manager", "create_lambda_handler"]
