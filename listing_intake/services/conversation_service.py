from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from listing_intake.logging_config import get_logger
from listing_intake.models import Conversation
from listing_intake.services.context import OPTED_OUT, merge_context
from listing_intake.services.state_machine import INITIAL_STATE, ConversationState, coerce_state

logger = get_logger("conversation_service")


class ConversationStore:
    """Keyed access to conversations: get-by-phone, upsert and partial context merge."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, phone: str) -> Optional[Conversation]:
        return self.db.query(Conversation).filter(Conversation.phone == phone).first()

    def get_or_create(self, phone: str) -> Conversation:
        conversation = self.get(phone)
        if conversation:
            return conversation

        conversation = Conversation(phone=phone, state=INITIAL_STATE.value, context={}, is_authorized=False)
        self.db.add(conversation)
        try:
            self.db.commit()
        except IntegrityError:
            # Another delivery for the same phone created it first.
            self.db.rollback()
            conversation = self.get(phone)
        else:
            logger.info("Conversation created", extra={"context": {"phone": phone}})
        return conversation

    def save(
        self,
        conversation: Conversation,
        state: ConversationState,
        patch: Optional[Mapping[str, Any]] = None,
        **fields,
    ) -> Conversation:
        """Persist the new state and merge ``patch`` into the stored context.

        The row is re-read first so keys written by a concurrent delivery for
        the same phone survive the merge.
        """
        self.db.refresh(conversation)
        previous = coerce_state(conversation.state)
        conversation.state = state.value
        conversation.context = merge_context(conversation.context, patch)
        for name, value in fields.items():
            setattr(conversation, name, value)
        conversation.updated_at = datetime.now(timezone.utc)
        self.db.commit()

        if previous != state:
            logger.info(
                "Conversation state changed",
                extra={"context": {"phone": conversation.phone, "from": previous.value, "to": state.value}},
            )
        return conversation

    def reset(self, conversation: Conversation) -> Conversation:
        """Back to the initial state with an empty context.

        Authorization and seller linkage survive, as does an opt-out.
        """
        self.db.refresh(conversation)
        context = {}
        if OPTED_OUT.read(conversation.context):
            context.update(OPTED_OUT.patch(True))
        conversation.state = INITIAL_STATE.value
        conversation.context = context
        conversation.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        logger.info("Conversation reset", extra={"context": {"phone": conversation.phone}})
        return conversation
