from phqdif.models.base import BaseItemModel, PolytomousItemModel
from phqdif.models.polytomous import GradedResponseModel

__all__ = [
    "BaseItemModel",
    "PolytomousItemModel",
    "GradedResponseModel",
]
