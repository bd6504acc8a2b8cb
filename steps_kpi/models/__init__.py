from steps_kpi.models.entities import Feature, MonthlyCost, Target, Transaction, User

__all__ = [
    "Feature",
    "MonthlyCost",
    "Target",
    "Transaction",
    "User",
]
