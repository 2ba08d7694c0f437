from .budget_router import BudgetRouter, ModelTier, get_model_tier

__all__ = ["BudgetRouter", "ModelTier", "get_model_tier"]
