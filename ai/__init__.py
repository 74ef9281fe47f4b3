"""AI module: analysis providers and the manager that routes between them."""

from ai.adapters import AnalysisRequest, AnalysisResult, Manager, create_manager

__all__ = ["AnalysisRequest", "AnalysisResult", "Manager", "create_manager", "quick_analyze"]


# Quick start entry point
def quick_analyze(idea: str, context=None) -> AnalysisResult:
    """
    Analyze a single idea with a manager built from the environment.

    Args:
        idea: The idea text to score
        context: Optional DomainContext the idea is scored against

    Returns:
        The AnalysisResult of the first provider that succeeded
    """
    from core.config import get_settings
    from core.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.app.LOG_LEVEL, settings.app.LOG_DIR)
    return create_manager(settings).analyze_idea(idea, context)
