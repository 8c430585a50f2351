"""Conversation dispatcher: one inbound event in, one state mutation and replies out.

Processing order for every event:

1. idempotency gate on ``(phone, inbound_message_id)``
2. load or create the conversation
3. global commands (cancel, help, stop, start, menu), then the mid-listing
   sell (resume or restart) and submit shortcuts
4. the handler registered for the current state
5. persist state and context as one unit
6. send replies; messenger failures are logged, never raised

Handlers never touch the conversation row. They return a ``Transition`` and
the dispatcher is the single place that writes it.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from listing_intake.config import Settings, settings
from listing_intake.errors import (
    CommerceAPIError,
    DedupStoreUnavailable,
    DuplicateEvent,
    MediaDownloadError,
    MessengerError,
    UploadError,
)
from listing_intake.logging_config import LoggerAdapter, get_logger
from listing_intake.models import ListingDraft
from listing_intake.schemas.outbound import OutboundMessage
from listing_intake.schemas.webhook import EventKind, InboundEvent
from listing_intake.services import messages
from listing_intake.services.commerce_client import CommerceClient
from listing_intake.services.context import (
    CURRENT_FIELD,
    EDITING_FIELD,
    EMAIL_ATTEMPTS,
    LISTING_ID,
    OPTED_OUT,
    PENDING_EMAIL,
    PENDING_INTENT,
    RESUME_OFFERED,
    SUB_STATE,
)
from listing_intake.services.conversation_service import ConversationStore
from listing_intake.services.dedup_store import DedupStore
from listing_intake.services.extraction_service import FieldExtractor
from listing_intake.services.field_rules import (
    EDITABLE_FIELDS,
    MEASUREMENTS,
    REQUIRED_FIELDS,
    extract_fields,
    field_hint,
    find_embellishments,
    is_compound_answer,
    validate_control,
    validate_field,
)
from listing_intake.services.listing_service import (
    STATUS_INCOMPLETE,
    ListingDraftStore,
    display_value,
    product_payload,
)
from listing_intake.services.media_uploader import MediaUploader
from listing_intake.services.photo_service import PhotoCollector
from listing_intake.services.seller_service import SellerDirectory, is_valid_email, normalize_email, phones_match
from listing_intake.services.state_machine import ConversationState, coerce_state, reset, transition
from listing_intake.services.whatsapp_service import WhatsAppService

logger = get_logger("dispatcher")

State = ConversationState

HELP_COMMANDS = {"help", "?"}
STOP_COMMANDS = {"stop", "unsubscribe"}
START_COMMANDS = {"start", "subscribe"}
MENU_COMMANDS = {"menu", "home"}
CANCEL_COMMANDS = {"cancel"}
SELL_WORDS = {"sell", "list", "1"}
SELL_COMMANDS = {"sell", "list"}
RESUME_WORDS = {messages.RESUME, "continue"}
RESTART_WORDS = {messages.RESTART, "start over"}
DONE_WORDS = {"done", "next", "continue", "finished"}
YES_WORDS = {"yes", "y", "ok"}
NO_WORDS = {"no", "n"}

SUB_MEASUREMENTS = "measurements"
SUB_AWAITING_NOTES = "awaiting_notes"
SUB_AWAITING_VALUE = "awaiting_value"
SUB_CONFIRM_ACCOUNT = "confirm_account"

FIELD_STATES = {
    ConversationState.AWAITING_VOICE_DESCRIPTION,
    ConversationState.AWAITING_STRUCTURED_FORM,
    ConversationState.COLLECTING_REQUIRED_FIELDS,
}


@dataclass
class Transition:
    state: ConversationState
    patch: dict[str, Any] = field(default_factory=dict)
    replies: list[OutboundMessage] = field(default_factory=list)
    reset: bool = False
    updates: dict[str, Any] = field(default_factory=dict)


@dataclass
class Turn:
    """Read-only view of one event against the conversation as loaded."""

    event: InboundEvent
    state: ConversationState
    context: dict[str, Any]
    is_authorized: bool
    seller_id: Optional[str]
    log: LoggerAdapter

    @property
    def phone(self) -> str:
        return self.event.phone

    @property
    def text(self) -> str:
        return (self.event.text or "").strip()

    @property
    def choice(self) -> str:
        """Control id when the user tapped one, otherwise the lowercased text."""
        return (self.event.control_id or self.event.text or "").strip().lower()

    def stay(self, *replies: Optional[OutboundMessage], **patch) -> Transition:
        return Transition(self.state, patch=dict(patch), replies=[reply for reply in replies if reply])

    def move(self, state: ConversationState, *replies: Optional[OutboundMessage], **patch) -> Transition:
        return Transition(state, patch=dict(patch), replies=[reply for reply in replies if reply])


@dataclass
class DispatchOutcome:
    status: str
    state: Optional[ConversationState] = None
    replies: list[OutboundMessage] = field(default_factory=list)


Handler = Callable[[Turn], Awaitable[Transition]]


class ConversationDispatcher:
    def __init__(
        self,
        db: Session,
        dedup: DedupStore,
        messenger: WhatsAppService,
        uploader: MediaUploader,
        commerce: CommerceClient,
        extractor: Optional[FieldExtractor] = None,
        config: Settings = settings,
    ):
        self.db = db
        self.dedup = dedup
        self.messenger = messenger
        self.uploader = uploader
        self.commerce = commerce
        self.extractor = extractor
        self.config = config
        self.conversations = ConversationStore(db)
        self.drafts = ListingDraftStore(db)
        self.sellers = SellerDirectory(db)
        self.photos = PhotoCollector(
            dedup,
            messenger,
            uploader,
            max_edge=config.image_max_edge,
            jpeg_quality=config.image_jpeg_quality,
        )
        self.handlers: dict[ConversationState, Handler] = {
            State.NEW: self._on_new,
            State.AWAITING_IDENTITY_VERIFICATION: self._on_identity,
            State.CHOOSING_INTAKE_METHOD: self._on_intake_method,
            State.AWAITING_VOICE_DESCRIPTION: self._on_description,
            State.AWAITING_STRUCTURED_FORM: self._on_form,
            State.COLLECTING_REQUIRED_FIELDS: self._on_required_field,
            State.COLLECTING_PHOTOS: self._on_photos,
            State.COLLECTING_OPTIONAL_NOTES: self._on_notes,
            State.CONFIRMING_SUMMARY: self._on_summary,
            State.EDITING_FIELD: self._on_edit,
        }

    async def handle(self, event: InboundEvent) -> DispatchOutcome:
        log = LoggerAdapter(logger, {"phone": event.phone, "message_id": event.inbound_message_id})

        try:
            await self._claim(event)
        except DuplicateEvent as exc:
            log.info("Duplicate event ignored", context={"reason": str(exc)})
            return DispatchOutcome(status="duplicate")

        try:
            outcome = await self._process(event, log)
        except Exception:
            log.exception("Event processing failed", context={"kind": event.kind.value})
            self.db.rollback()
            outcome = DispatchOutcome(status="error", replies=[messages.text(messages.GENERIC_ERROR)])

        await self._send(event.phone, outcome.replies, log)
        return outcome

    async def _claim(self, event: InboundEvent) -> None:
        if not await self.dedup.claim_event(event.phone, event.inbound_message_id, db=self.db):
            raise DuplicateEvent(event.phone, event.inbound_message_id)

    async def _process(self, event: InboundEvent, log: LoggerAdapter) -> DispatchOutcome:
        conversation = self.conversations.get_or_create(event.phone)
        current = coerce_state(conversation.state)
        turn = Turn(
            event=event,
            state=current,
            context=dict(conversation.context or {}),
            is_authorized=bool(conversation.is_authorized),
            seller_id=conversation.seller_id,
            log=log,
        )

        result = await self._global_command(turn)
        if result is None:
            result = await self._route(turn)

        if RESUME_OFFERED.read(turn.context) and RESUME_OFFERED.name not in result.patch:
            result.patch.update(RESUME_OFFERED.patch(None))

        if result.reset:
            # Back to the initial state first; a restart may then move straight on from there.
            initial = reset(current)
            next_state = transition(initial, result.state)
            self.conversations.reset(conversation)
            if next_state != initial or result.patch or result.updates:
                self.conversations.save(conversation, next_state, result.patch, **result.updates)
        else:
            next_state = transition(current, result.state)
            if next_state != current or result.patch or result.updates:
                self.conversations.save(conversation, next_state, result.patch, **result.updates)

        log.info(
            "Event processed",
            context={"kind": event.kind.value, "from": current.value, "to": next_state.value},
        )
        return DispatchOutcome(status="processed", state=next_state, replies=result.replies)

    async def _route(self, turn: Turn) -> Transition:
        if turn.event.kind == EventKind.UNSUPPORTED:
            return turn.stay(messages.text(messages.UNSUPPORTED))
        if turn.event.kind == EventKind.IMAGE and turn.state != State.COLLECTING_PHOTOS:
            return turn.stay(messages.text(messages.PHOTO_OUTSIDE_COLLECTION))
        return await self.handlers[turn.state](turn)

    async def _send(self, phone: str, replies: list[OutboundMessage], log: LoggerAdapter) -> None:
        for reply in replies:
            try:
                await self.messenger.send(phone, reply)
            except MessengerError as exc:
                log.warning("Reply not delivered", context={"error": str(exc), "status_code": exc.status_code})

    # Global commands

    async def _global_command(self, turn: Turn) -> Optional[Transition]:
        if turn.event.kind not in (EventKind.TEXT, EventKind.BUTTON, EventKind.LIST):
            command = None
        else:
            command = turn.choice

        if OPTED_OUT.read(turn.context):
            if command in START_COMMANDS:
                return turn.stay(messages.welcome(), **OPTED_OUT.patch(None))
            return turn.stay(messages.text(messages.UNSUBSCRIBED_BLOCK))

        if command in HELP_COMMANDS:
            return turn.stay(messages.text(messages.HELP))
        if command in STOP_COMMANDS:
            turn.log.info("Number opted out")
            return turn.stay(messages.text(messages.STOP), **OPTED_OUT.patch(True))
        if command in START_COMMANDS:
            return turn.stay(messages.welcome())
        if command in CANCEL_COMMANDS:
            await self._abandon_listing(turn)
            return Transition(State.NEW, replies=[messages.text(messages.CANCELLED)], reset=True)
        if command in MENU_COMMANDS:
            await self._abandon_listing(turn)
            return Transition(State.NEW, replies=[messages.menu()], reset=True)

        if RESUME_OFFERED.read(turn.context):
            if command in RESUME_WORDS:
                return await self._resume(turn)
            if command in RESTART_WORDS:
                await self._abandon_listing(turn)
                turn.log.info("Listing restarted", context={"from": turn.state.value})
                result = self._start_selling(turn)
                result.reset = True
                return result
        if command in SELL_COMMANDS and turn.state != State.NEW and LISTING_ID.read(turn.context):
            return turn.stay(messages.resume_offer(), **RESUME_OFFERED.patch(True))
        if command == messages.SUBMIT and turn.state != State.CONFIRMING_SUMMARY:
            return await self._submit_shortcut(turn)
        return None

    async def _resume(self, turn: Turn) -> Transition:
        """Repeat the question the conversation was waiting on."""
        state = turn.state
        sub_state = SUB_STATE.read(turn.context)
        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        if state == State.AWAITING_VOICE_DESCRIPTION:
            return turn.stay(messages.text(messages.ASK_DESCRIPTION))
        if state == State.AWAITING_STRUCTURED_FORM:
            return turn.stay(messages.listing_form(self.config.whatsapp_listing_flow_id, str(draft.id)))
        if state == State.COLLECTING_REQUIRED_FIELDS:
            if sub_state == SUB_MEASUREMENTS:
                return turn.stay(messages.text(messages.ASK_MEASUREMENTS))
            missing = self.drafts.missing_fields(draft)
            current = CURRENT_FIELD.read(turn.context)
            if current not in missing:
                current = missing[0] if missing else None
            if current is None:
                return self._next_required(turn, draft, [])
            return turn.stay(messages.ask_for_field(current))
        if state == State.COLLECTING_PHOTOS:
            return turn.stay(messages.photos_reminder(await self.dedup.photo_count(turn.phone)))
        if state == State.COLLECTING_OPTIONAL_NOTES:
            if sub_state == SUB_AWAITING_NOTES:
                return turn.stay(messages.text(messages.ASK_NOTES))
            return turn.stay(messages.ask_notes_choice(len(draft.photo_refs or [])))
        if state == State.EDITING_FIELD:
            editing = EDITING_FIELD.read(turn.context)
            if editing and sub_state == SUB_AWAITING_VALUE:
                return turn.stay(messages.ask_for_field(editing))
            return turn.stay(messages.choose_field_to_edit(draft))
        return turn.stay(messages.summary(draft))

    async def _submit_shortcut(self, turn: Turn) -> Optional[Transition]:
        """SUBMIT typed before the summary: submit if ready, else say what is missing."""
        draft = self._draft(turn)
        if draft is None:
            return None

        count = len(draft.photo_refs or [])
        if turn.state == State.COLLECTING_PHOTOS:
            count += await self.dedup.photo_count(turn.phone)

        missing = self.drafts.missing_fields(draft)
        if missing:
            turn.log.info("Submit requested with fields missing", context={"state": turn.state.value})
            if turn.state in FIELD_STATES:
                return self._next_required(turn, draft, [])
            return turn.stay(messages.not_ready(missing, count, self.config.min_photos))
        if count < self.config.min_photos:
            return turn.stay(messages.photos_needed_to_submit(count, self.config.min_photos))
        return await self._submit(turn, draft)

    async def _abandon_listing(self, turn: Turn) -> None:
        """Roll back an unsubmitted listing: delete uploaded files, drop pending photos."""
        try:
            pending = await self.dedup.photos(turn.phone)
        except DedupStoreUnavailable as exc:
            turn.log.warning("Pending photos unreadable during cancel", context={"error": str(exc)})
            pending = []

        draft = self.drafts.get(LISTING_ID.read(turn.context))
        file_ids = list(pending)
        if draft is not None and draft.status == STATUS_INCOMPLETE:
            file_ids = list(dict.fromkeys([*(draft.photo_refs or []), *pending]))
            self.drafts.abandon(draft)

        if file_ids:
            await self.uploader.delete(file_ids)
        await self.dedup.clear(turn.phone)

    # State handlers

    async def _on_new(self, turn: Turn) -> Transition:
        if turn.choice not in SELL_WORDS:
            return turn.stay(messages.welcome())
        return self._start_selling(turn)

    def _start_selling(self, turn: Turn) -> Transition:
        if turn.is_authorized:
            return turn.move(State.CHOOSING_INTAKE_METHOD, self._intake_prompt())
        return turn.move(
            State.AWAITING_IDENTITY_VERIFICATION,
            messages.text(messages.ASK_EMAIL),
            **PENDING_INTENT.patch("sell"),
        )

    async def _on_identity(self, turn: Turn) -> Transition:
        if SUB_STATE.read(turn.context) == SUB_CONFIRM_ACCOUNT:
            return self._on_account_confirmation(turn)
        if turn.choice in SELL_COMMANDS:
            return turn.stay(messages.text(messages.ASK_EMAIL))

        email = normalize_email(turn.text)
        if not is_valid_email(email):
            return self._identity_failed(turn, messages.INVALID_EMAIL)

        seller = self.sellers.find_by_email(email)
        if seller is None:
            return turn.stay(
                messages.confirm_account(email),
                **SUB_STATE.patch(SUB_CONFIRM_ACCOUNT),
                **PENDING_EMAIL.patch(email),
            )
        if seller.phone and not phones_match(seller.phone, turn.phone):
            return self._identity_failed(turn, messages.EMAIL_OTHER_PHONE)

        self.sellers.link_phone(seller, turn.phone)
        turn.log.info("Seller verified", context={"seller_id": seller.id})
        return self._verified(turn, seller.id, messages.verified(seller.name))

    def _on_account_confirmation(self, turn: Turn) -> Transition:
        email = PENDING_EMAIL.read(turn.context)
        if email and (turn.choice == messages.CREATE_ACCOUNT or turn.choice in YES_WORDS):
            seller = self.sellers.find_by_email(email) or self.sellers.create(email, turn.phone)
            turn.log.info("Seller account created", context={"seller_id": seller.id})
            return self._verified(turn, seller.id, messages.text(messages.ACCOUNT_CREATED))
        return Transition(State.NEW, replies=[messages.text(messages.ACCOUNT_DECLINED)], reset=True)

    def _verified(self, turn: Turn, seller_id: str, greeting: OutboundMessage) -> Transition:
        result = turn.move(
            State.CHOOSING_INTAKE_METHOD,
            greeting,
            self._intake_prompt(),
            **EMAIL_ATTEMPTS.patch(None),
            **PENDING_INTENT.patch(None),
            **PENDING_EMAIL.patch(None),
            **SUB_STATE.patch(None),
        )
        result.updates = {"is_authorized": True, "seller_id": seller_id}
        return result

    def _identity_failed(self, turn: Turn, reason: str) -> Transition:
        attempts = EMAIL_ATTEMPTS.read(turn.context) + 1
        if attempts >= self.config.max_email_attempts:
            turn.log.info("Email verification attempts exhausted", context={"attempts": attempts})
            return Transition(State.NEW, replies=[messages.text(messages.TOO_MANY_ATTEMPTS)], reset=True)
        return turn.stay(messages.text(reason), **EMAIL_ATTEMPTS.patch(attempts))

    def _intake_prompt(self) -> OutboundMessage:
        return messages.choose_intake_method(form_available=bool(self.config.whatsapp_listing_flow_id))

    async def _on_intake_method(self, turn: Turn) -> Transition:
        choice = turn.choice
        wants_form = choice in (messages.METHOD_FORM, "form", "2")
        wants_voice = choice in (messages.METHOD_VOICE, "voice", "text", "describe", "1")
        if wants_form and not self.config.whatsapp_listing_flow_id:
            wants_form, wants_voice = False, True
        if not (wants_form or wants_voice):
            return turn.stay(self._intake_prompt())

        draft = self.drafts.create(turn.phone, turn.seller_id)
        listing_id = str(draft.id)
        if wants_form:
            return turn.move(
                State.AWAITING_STRUCTURED_FORM,
                messages.listing_form(self.config.whatsapp_listing_flow_id, listing_id),
                **LISTING_ID.patch(listing_id),
            )
        return turn.move(
            State.AWAITING_VOICE_DESCRIPTION,
            messages.text(messages.ASK_DESCRIPTION),
            **LISTING_ID.patch(listing_id),
        )

    async def _on_description(self, turn: Turn) -> Transition:
        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        replies: list[OutboundMessage] = []
        description = turn.text
        if turn.event.kind == EventKind.AUDIO:
            description = await self._transcribe(turn)
            if not description:
                return turn.stay(messages.text(messages.TRANSCRIPTION_FAILED))
            replies.append(messages.heard(description))
        if not description:
            return turn.stay(messages.text(messages.ASK_DESCRIPTION))

        self.drafts.set_fields(draft, {"description": description})
        missing = self.drafts.missing_fields(draft)
        values = extract_fields(description, missing)
        if self.extractor is not None:
            suggested = await self.extractor.extract(description)
            values.update(_validated_suggestions(suggested, [name for name in missing if name not in values]))
            if suggested.get("notes"):
                self.drafts.append_notes(draft, suggested["notes"])
        self.drafts.set_fields(draft, values)

        embellishments = find_embellishments(description)
        if embellishments and not any(word in (draft.notes or "").lower() for word in embellishments):
            self.drafts.append_notes(draft, ", ".join(embellishments).capitalize())

        replies.append(messages.captured({name: display_value(draft, name) for name in values}))
        return self._next_required(turn, draft, replies)

    async def _transcribe(self, turn: Turn) -> Optional[str]:
        if self.extractor is None or not turn.event.media_id:
            return None
        try:
            audio = await self.messenger.download_media(turn.event.media_id)
        except MediaDownloadError as exc:
            turn.log.warning("Voice note download failed", context={"error": str(exc)})
            return None
        return await self.extractor.transcribe(audio, turn.event.mime_type)

    async def _on_form(self, turn: Turn) -> Transition:
        if turn.event.kind in (EventKind.TEXT, EventKind.AUDIO):
            return await self._on_description(turn)
        if turn.event.kind != EventKind.FLOW_COMPLETE:
            return turn.stay(
                messages.listing_form(self.config.whatsapp_listing_flow_id, LISTING_ID.read(turn.context) or "")
            )

        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        form = turn.event.form_data
        values = {}
        for name in REQUIRED_FIELDS:
            result = validate_field(name, form.get(name))
            if result.ok:
                values[name] = result.value
        if form.get("description"):
            values["description"] = str(form["description"]).strip()
        self.drafts.set_fields(draft, values)
        if form.get("notes"):
            self.drafts.append_notes(draft, str(form["notes"]))
        return self._next_required(turn, draft, [])

    def _next_required(self, turn: Turn, draft: ListingDraft, replies: list) -> Transition:
        """Prompt for the first unfilled field, or move on to photos when none remain."""
        missing = self.drafts.missing_fields(draft)
        if missing:
            next_field = missing[0]
            return turn.move(
                State.COLLECTING_REQUIRED_FIELDS,
                *replies,
                messages.ask_for_field(next_field),
                **CURRENT_FIELD.patch(next_field),
                **SUB_STATE.patch(None),
            )
        return turn.move(
            State.COLLECTING_PHOTOS,
            *replies,
            messages.photos_prompt(self.config.min_photos),
            **CURRENT_FIELD.patch(None),
            **SUB_STATE.patch(None),
        )

    async def _on_required_field(self, turn: Turn) -> Transition:
        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        missing = self.drafts.missing_fields(draft)
        if not missing:
            return self._next_required(turn, draft, [])
        current = CURRENT_FIELD.read(turn.context)
        if current not in missing:
            current = missing[0]

        if SUB_STATE.read(turn.context) == SUB_MEASUREMENTS:
            if not turn.text:
                return turn.stay(messages.text(messages.ASK_MEASUREMENTS))
            self.drafts.set_fields(draft, {"size": f"{MEASUREMENTS}: {turn.text}"})
            return self._next_required(turn, draft, [])

        values = {}
        if turn.event.control_id:
            selected = validate_control(turn.event.control_id)
            if selected.ok:
                name, value = selected.value
                values[name] = value
        hint = None
        if not values and turn.text:
            values, hint = _match_answer(turn.text, current, missing)

        if not values:
            turn.log.info("Field input not matched", context={"field": current})
            return turn.stay(messages.ask_for_field(current, hint=hint or field_hint(current)))

        if values.get("size") == MEASUREMENTS:
            values.pop("size")
            self.drafts.set_fields(draft, values)
            return turn.stay(
                messages.text(messages.ASK_MEASUREMENTS),
                **CURRENT_FIELD.patch("size"),
                **SUB_STATE.patch(SUB_MEASUREMENTS),
            )

        self.drafts.set_fields(draft, values)
        others = {name: display_value(draft, name) for name in values if name != current}
        return self._next_required(turn, draft, [messages.captured(others)])

    async def _on_photos(self, turn: Turn) -> Transition:
        min_photos = self.config.min_photos
        if turn.event.kind == EventKind.IMAGE:
            try:
                count = await self.photos.accept(turn.phone, turn.event.media_id)
            except (UploadError, MediaDownloadError, DedupStoreUnavailable) as exc:
                turn.log.warning("Photo not accepted", context={"error": str(exc), "type": type(exc).__name__})
                return turn.stay(messages.text(messages.PHOTO_UPLOAD_FAILED))
            if count is None:
                return turn.stay()
            return turn.stay(messages.photo_received(count, min_photos))

        count = await self.dedup.photo_count(turn.phone)
        if turn.choice not in DONE_WORDS:
            return turn.stay(messages.photos_reminder(count))
        if count < min_photos:
            return turn.stay(messages.need_more_photos(count, min_photos))

        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()
        refs = await self.dedup.take_photos(turn.phone)
        self.drafts.attach_photos(draft, refs)
        await self.dedup.clear(turn.phone, keep_pending=True)
        return turn.move(State.COLLECTING_OPTIONAL_NOTES, messages.ask_notes_choice(len(draft.photo_refs or [])))

    async def _on_notes(self, turn: Turn) -> Transition:
        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        choice = turn.choice
        if SUB_STATE.read(turn.context) != SUB_AWAITING_NOTES:
            if choice in (messages.SKIP_DETAILS, "skip") or choice in NO_WORDS:
                return turn.move(State.CONFIRMING_SUMMARY, messages.summary(draft))
            if choice in (messages.ADD_DETAILS, "add") or choice in YES_WORDS:
                return turn.stay(messages.text(messages.ASK_NOTES), **SUB_STATE.patch(SUB_AWAITING_NOTES))

        if not turn.text or turn.event.control_id:
            return turn.stay(messages.text(field_hint("notes")))
        self.drafts.append_notes(draft, turn.text)
        return turn.move(State.CONFIRMING_SUMMARY, messages.summary(draft), **SUB_STATE.patch(None))

    async def _on_summary(self, turn: Turn) -> Transition:
        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        choice = turn.choice
        if choice == messages.SUBMIT or choice in YES_WORDS:
            return await self._submit(turn, draft)
        if choice in (messages.EDIT, "change") or choice in NO_WORDS:
            return turn.move(State.EDITING_FIELD, messages.choose_field_to_edit(draft), **SUB_STATE.patch(None))
        return turn.stay(messages.summary(draft))

    async def _attach_late_photos(self, turn: Turn, draft: ListingDraft) -> None:
        """Photos from a burst whose upload finished after ``done`` wait in the pending list."""
        try:
            refs = await self.dedup.take_photos(turn.phone)
        except DedupStoreUnavailable as exc:
            turn.log.warning("Late photos unreadable", context={"error": str(exc)})
            return
        if refs:
            turn.log.info("Late photos attached", context={"count": len(refs)})
            self.drafts.attach_photos(draft, refs)

    async def _submit(self, turn: Turn, draft: ListingDraft) -> Transition:
        min_photos = self.config.min_photos
        await self._attach_late_photos(turn, draft)
        if not self.drafts.is_ready(draft, min_photos):
            missing = self.drafts.missing_fields(draft)
            return turn.stay(messages.not_ready(missing, len(draft.photo_refs or []), min_photos))

        if not draft.external_product_id:
            try:
                product_id = await self.commerce.create_product(product_payload(draft), list(draft.photo_refs))
            except CommerceAPIError as exc:
                turn.log.warning("Listing submission failed", context={"error": str(exc)})
                return turn.stay(messages.text(messages.SUBMIT_FAILED))
            self.drafts.record_external_product(draft, product_id)

        self.drafts.mark_ready(draft, min_photos)
        turn.log.info(
            "Listing submitted",
            context={"listing_id": str(draft.id), "product_id": draft.external_product_id},
        )
        return Transition(State.NEW, replies=[messages.text(messages.SUBMITTED)], reset=True)

    async def _on_edit(self, turn: Turn) -> Transition:
        draft = self._draft(turn)
        if draft is None:
            return self._listing_lost()

        editing = EDITING_FIELD.read(turn.context)
        sub_state = SUB_STATE.read(turn.context)

        if editing is None or sub_state not in (SUB_AWAITING_VALUE, SUB_MEASUREMENTS):
            selected = _selected_field(turn.choice)
            if selected is None:
                return turn.stay(messages.choose_field_to_edit(draft))
            return turn.stay(
                messages.ask_for_field(selected),
                **EDITING_FIELD.patch(selected),
                **SUB_STATE.patch(SUB_AWAITING_VALUE),
            )

        if sub_state == SUB_MEASUREMENTS:
            if not turn.text:
                return turn.stay(messages.text(messages.ASK_MEASUREMENTS))
            self.drafts.set_fields(draft, {"size": f"{MEASUREMENTS}: {turn.text}"})
            return self._back_to_summary(turn, draft)

        result = validate_control(turn.event.control_id, expected_field=editing).map(lambda pair: pair[1])
        if not result.ok:
            result = validate_field(editing, turn.text)
        if not result.ok:
            return turn.stay(messages.ask_for_field(editing, hint=result.hint))

        if editing == "size" and result.value == MEASUREMENTS:
            return turn.stay(messages.text(messages.ASK_MEASUREMENTS), **SUB_STATE.patch(SUB_MEASUREMENTS))
        self.drafts.set_fields(draft, {editing: result.value})
        return self._back_to_summary(turn, draft)

    def _back_to_summary(self, turn: Turn, draft: ListingDraft) -> Transition:
        return turn.move(
            State.CONFIRMING_SUMMARY,
            messages.summary(draft),
            **EDITING_FIELD.patch(None),
            **SUB_STATE.patch(None),
        )

    def _draft(self, turn: Turn) -> Optional[ListingDraft]:
        return self.drafts.get(LISTING_ID.read(turn.context))

    def _listing_lost(self) -> Transition:
        return Transition(State.NEW, replies=[messages.text(messages.LISTING_LOST)], reset=True)


def _selected_field(choice: str) -> Optional[str]:
    """Map an edit selector (list id, 1-based number or field name) to a field."""
    if choice.startswith(messages.EDIT_PREFIX):
        choice = choice[len(messages.EDIT_PREFIX) :]
    if choice.isdigit():
        index = int(choice) - 1
        if 0 <= index < len(EDITABLE_FIELDS):
            return EDITABLE_FIELDS[index]
        return None
    for name in EDITABLE_FIELDS:
        if choice in (name, name.replace("_", " ")):
            return name
    return None


def _match_answer(text: str, current: str, missing: list[str]) -> tuple[dict[str, Any], Optional[str]]:
    """Field values from a typed answer to the question about ``current``.

    A compound message may fill any missing field. A single answer is tried
    against ``current`` first and can only spill over into other enumerated
    fields, so a bare number is a price only when the price was asked for.
    Designer is free text and accepts almost anything, so for it the
    enumerated fields are tried first.
    """
    if is_compound_answer(text):
        values = extract_fields(text, missing)
        if values:
            return values, None
    elif current == "designer":
        values = extract_fields(text, [name for name in missing if name != "price"])
        if values:
            return values, None
    else:
        result = validate_field(current, text)
        if result.ok:
            return {current: result.value}, None
        values = extract_fields(text, [name for name in missing if name not in (current, "price")])
        return values, None if values else result.hint

    result = validate_field(current, text)
    if result.ok:
        return {current: result.value}, None
    return {}, result.hint


def _validated_suggestions(suggested: dict[str, str], fields: list[str]) -> dict[str, Any]:
    """Keep only extractor suggestions that pass the same rules as typed input."""
    accepted = {}
    for name in fields:
        if name not in suggested:
            continue
        result = validate_field(name, suggested[name])
        if result.ok:
            accepted[name] = result.value
    return accepted
