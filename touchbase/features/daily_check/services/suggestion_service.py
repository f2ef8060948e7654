"""
Decides what suggestion, if any, a contact gets today.

Gates run before any model call: users who turned AI suggestions off get
nothing, users without an eligible plan get the static upsell text, everyone
else gets a model completion.
"""

from datetime import datetime
from typing import Protocol

from touchbase.infrastructure.observability.logging import get_logger
from touchbase.utils.dates import ensure_aware

from ..domain.models import UPSELL_SUGGESTION, Contact, Interaction, UserContext
from ..repository.store import DailyCheckStore

logger = get_logger(__name__)

RECENT_INTERACTION_LIMIT = 10


class SuggestionGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


def build_prompt(contact: Contact, interactions: list[Interaction], now: datetime) -> str:
    if contact.last_contacted:
        days = (ensure_aware(now) - ensure_aware(contact.last_contacted)).days
        last_contacted = f"{days} days ago"
    else:
        last_contacted = "Never"

    history = sorted(interactions, key=lambda i: ensure_aware(i.date))
    activity = "\n".join(
        f"- {ensure_aware(i.date).date().isoformat()}: {i.type} ({i.sentiment or 'neutral'})"
        for i in history
    )

    return "\n".join(
        [
            "Analyze this contact's information and suggest how to strengthen the relationship.",
            "",
            "Contact Details:",
            f"- Name: {contact.name}",
            f"- Last contacted: {last_contacted}",
            f"- Preferred method: {contact.preferred_contact_method or 'Not specified'}",
            f"- Preferred contact frequency: {contact.contact_frequency or 'Not specified'}",
            f"- Relationship level: {contact.relationship_level}/5",
            f"- Missed check-ins: {contact.missed_interactions}",
            f"- Notes: {contact.notes or 'None'}",
            "",
            "Recent Activity (chronological):",
            activity or "None",
            "",
            "Provide at most two suggestions, each on a new line starting with "
            '"[type: call/message/social]".',
        ]
    )


class SuggestionService:
    def __init__(self, store: DailyCheckStore, generator: SuggestionGenerator):
        self.store = store
        self.generator = generator

    async def suggestion_for(
        self, contact: Contact, context: UserContext, now: datetime
    ) -> str | None:
        """
        Returns:
            None when the user disabled suggestions, the upsell text for
            ineligible plans, otherwise the model's completion

        Raises:
            SuggestionClientError subclasses from the generator
        """
        if not context.ai_suggestions_enabled:
            logger.debug("AI suggestions disabled by user", contact_id=contact.id)
            return None

        if not context.is_eligible(now):
            logger.debug("User not on an eligible plan, using upsell", contact_id=contact.id)
            return UPSELL_SUGGESTION

        interactions = await self.store.fetch_recent_interactions(
            contact.id, limit=RECENT_INTERACTION_LIMIT
        )
        return await self.generator.generate(build_prompt(contact, interactions, now))
