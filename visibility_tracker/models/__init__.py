from visibility_tracker.models.brand import Brand, Competitor
from visibility_tracker.models.competitive_stat import CompetitiveStat
from visibility_tracker.models.mention import Mention
from visibility_tracker.models.prompt import BrandPrompt, PromptResource
from visibility_tracker.models.provider import Provider

__all__ = [
    "Brand",
    "BrandPrompt",
    "CompetitiveStat",
    "Competitor",
    "Mention",
    "PromptResource",
    "Provider",
]
