import importlib
from typing import Any

__all__ = [
    "scan_dif",
    "compute_item_dif",
    "DIFCriterion",
    "DIFResult",
    "ItemDIFStatistics",
    "release_and_test",
    "theta_difference",
    "SensitivityResult",
    "fit_item_response_model",
    "evaluation_grid",
    "project",
    "average_difference",
    "classification_impact",
    "ItemResponseModel",
    "ResponseCurve",
]

_LAZY_IMPORTS = {
    "scan_dif": ("phqdif.diagnostics.dif", "scan_dif"),
    "compute_item_dif": ("phqdif.diagnostics.dif", "compute_item_dif"),
    "DIFCriterion": ("phqdif.diagnostics.dif", "DIFCriterion"),
    "DIFResult": ("phqdif.diagnostics.dif", "DIFResult"),
    "ItemDIFStatistics": ("phqdif.diagnostics.dif", "ItemDIFStatistics"),
    "release_and_test": ("phqdif.diagnostics.sensitivity", "release_and_test"),
    "theta_difference": ("phqdif.diagnostics.sensitivity", "theta_difference"),
    "SensitivityResult": ("phqdif.diagnostics.sensitivity", "SensitivityResult"),
    "fit_item_response_model": ("phqdif.diagnostics.curves", "fit_item_response_model"),
    "evaluation_grid": ("phqdif.diagnostics.curves", "evaluation_grid"),
    "project": ("phqdif.diagnostics.curves", "project"),
    "average_difference": ("phqdif.diagnostics.curves", "average_difference"),
    "classification_impact": ("phqdif.diagnostics.curves", "classification_impact"),
    "ItemResponseModel": ("phqdif.diagnostics.curves", "ItemResponseModel"),
    "ResponseCurve": ("phqdif.diagnostics.curves", "ResponseCurve"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_IMPORTS:
        module_name, symbol_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_name)
        value = getattr(module, symbol_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'phqdif.diagnostics' has no attribute '{name}'")


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
