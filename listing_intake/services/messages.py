"""Reply copy for the intake conversation."""

from typing import Optional

from listing_intake.models import ListingDraft
from listing_intake.schemas.outbound import (
    ButtonMessage,
    FlowMessage,
    ListMessage,
    ListSection,
    OutboundMessage,
    ReplyOption,
    TextMessage,
)
from listing_intake.services.field_rules import (
    EDITABLE_FIELDS,
    FIELD_LABELS,
    control_id,
    options_for,
)
from listing_intake.services.listing_service import display_value, listing_title

SELL = "sell"
METHOD_VOICE = "method:voice"
METHOD_FORM = "method:form"
DONE = "done"
SKIP_DETAILS = "skip_details"
ADD_DETAILS = "add_details"
SUBMIT = "submit"
EDIT = "edit"
CANCEL = "cancel"
EDIT_PREFIX = "edit:"
CREATE_ACCOUNT = "create_yes"
DECLINE_ACCOUNT = "create_no"
RESUME = "resume"
RESTART = "restart"

GENERIC_ERROR = "Koi baat nahi! (No worries!) 💛\nSomething went wrong on our side. Please try again, or text MENU to restart."

HELP = (
    "I'm here to help. 💛\n\n"
    "Type:\n"
    "SELL – List an item\n"
    "MENU – Start again\n"
    "SUBMIT – Submit your listing\n"
    "CANCEL – Cancel this listing\n"
    "STOP – Unsubscribe"
)

STOP = "You've been unsubscribed.\nText START anytime. Your account stays safe. 💛"
UNSUBSCRIBED_BLOCK = "You're unsubscribed right now.\nText START when you're ready."
CANCELLED = "Listing cancelled. Reply SELL to start over."
ASK_EMAIL = "Let's verify your account (your email stays private 🔒).\n\nWhat email did you sign up with?"
INVALID_EMAIL = "Hmm, that doesn't look right.\nTry: you@example.com"
EMAIL_OTHER_PHONE = "This email is linked to another phone.\nText from that phone or email admin@thephirstory.com"
TOO_MANY_ATTEMPTS = "Koi baat nahi, it happens. 💛\nLet's start fresh.\n\nText MENU to begin again."
ACCOUNT_CREATED = "Account created! ✓"
ACCOUNT_DECLINED = "Cancelled. Reply SELL when ready."
ASK_DESCRIPTION = (
    "Describe your item (voice or text):\n"
    "Designer, size, condition, price\n\n"
    'Example: "Maria B lawn 3pc, M, like new, $80"'
)
TRANSCRIPTION_FAILED = "Sorry, I couldn't hear that voice note. Could you type the description instead?"
ASK_MEASUREMENTS = "Please type the measurements (e.g. chest 38, length 42)."
PHOTOS_PROMPT = (
    "Perfect! 🎉\n\n"
    "Now send at least {min_photos} photos:\n\n"
    "1️⃣ Front view\n2️⃣ Back view\n3️⃣ Designer tag\n\n"
    "Just send them! 📸"
)
PHOTO_OUTSIDE_COLLECTION = "Send photos after describing your item.\n\nReply SELL to start."
PHOTO_UPLOAD_FAILED = "Sorry, that photo didn't upload. Please send it again. 📸"
ASK_NOTES = 'Great! Tell me about any flaws or special details:\n\n(e.g. "slight stain on sleeve", "beautiful beadwork")'
SUBMIT_FAILED = "Sorry, we couldn't submit your listing just now. Tap SUBMIT to try again."
SUBMITTED = (
    "Your listing is ready for review. 🎉\n\n"
    "We'll text you once it's live (usually within 72 hours).\n\n"
    "Text SELL to list another item!"
)
LISTING_LOST = "Sorry, I lost track of that listing. Reply SELL to start again."
UNSUPPORTED = "Sorry, I can only read text, voice notes and photos."

_QUESTIONS = {
    "designer": "What designer/brand?\ne.g. Maria B, Sana Safinaz, Khaadi",
    "pieces_included": "How many pieces?",
    "size": "What size?",
    "condition": "What condition?",
    "price": "What price are you asking? (in USD)\ne.g. 80",
    "notes": "Please type any flaws or special details.",
}


def text(body: str) -> TextMessage:
    return TextMessage(body=body)


def welcome() -> ButtonMessage:
    return ButtonMessage(
        body="Hi! 👋 Welcome to The Phir Story.\n\n• Tap SELL to list an item\n• Visit thephirstory.com to shop",
        options=[ReplyOption(id=SELL, title="SELL")],
    )


def menu() -> ButtonMessage:
    return ButtonMessage(
        body="What would you like to do today?",
        options=[ReplyOption(id=SELL, title="SELL / LIST an item")],
    )


def verified(name: Optional[str] = None) -> TextMessage:
    greeting = f"Welcome back, {name}! ✓" if name else "All set! 👍 You're verified."
    return text(greeting)


def confirm_account(email: str) -> ButtonMessage:
    return ButtonMessage(
        body=f"New here? Let's create your account!\n\nCreate account for {email} and start selling?",
        options=[
            ReplyOption(id=CREATE_ACCOUNT, title="YES ✓"),
            ReplyOption(id=DECLINE_ACCOUNT, title="CANCEL"),
        ],
    )


def resume_offer() -> ButtonMessage:
    return ButtonMessage(
        body="You're already listing an item. Continue where you left off?",
        options=[
            ReplyOption(id=RESUME, title="CONTINUE"),
            ReplyOption(id=RESTART, title="RESTART"),
        ],
    )


def choose_intake_method(form_available: bool) -> ButtonMessage:
    options = [ReplyOption(id=METHOD_VOICE, title="Voice or text")]
    if form_available:
        options.append(ReplyOption(id=METHOD_FORM, title="Fill a form"))
    return ButtonMessage(body="How would you like to describe your item?", options=options)


def listing_form(flow_id: str, flow_token: str) -> FlowMessage:
    return FlowMessage(
        body="Tap below to fill in your item details.",
        flow_id=flow_id,
        flow_token=flow_token,
        cta="Open form",
    )


def heard(transcript: str) -> TextMessage:
    return text(f'I heard: "{transcript}"')


def captured(values: dict[str, str]) -> Optional[TextMessage]:
    if not values:
        return None
    lines = [f"{FIELD_LABELS.get(field, field)}: {value}" for field, value in values.items()]
    return text("Got it ✓\n" + "\n".join(lines))


def ask_for_field(field: str, hint: Optional[str] = None) -> OutboundMessage:
    """Prompt for one field: buttons for pieces, a list for size/condition, text otherwise."""
    question = _QUESTIONS.get(field, f"What's the {FIELD_LABELS.get(field, field)}?")
    if hint:
        question = f"{hint}\n\n{question}"

    options = options_for(field)
    if not options:
        return text(question)
    if len(options) <= 3:
        return ButtonMessage(
            body=question,
            options=[ReplyOption(id=control_id(field, option.value), title=option.label) for option in options],
        )
    rows = [ReplyOption(id=control_id(field, option.value), title=option.label) for option in options]
    return ListMessage(
        body=question,
        button="Choose",
        sections=[ListSection(title=FIELD_LABELS.get(field, field), rows=rows)],
    )


def photos_prompt(min_photos: int) -> TextMessage:
    return text(PHOTOS_PROMPT.format(min_photos=min_photos))


def photo_received(count: int, min_photos: int) -> TextMessage:
    if count < min_photos:
        remaining = min_photos - count
        return text(f"Got photo {count} ✓ Send {remaining} more 📸")
    return text(f"Got photo {count} ✓ Send more or text DONE when finished.")


def need_more_photos(count: int, min_photos: int) -> TextMessage:
    return text(f"You can continue after {min_photos} photos. Need {min_photos - count} more 📸")


def photos_needed_to_submit(count: int, min_photos: int) -> TextMessage:
    return text(f"You can submit after {min_photos} photos. Need {min_photos - count} more 📸")


def photos_reminder(count: int) -> ButtonMessage:
    return ButtonMessage(
        body=f"Send photos now (you have {count}). Tap DONE when finished! 📸",
        options=[ReplyOption(id=DONE, title="DONE")],
    )


def ask_notes_choice(count: int) -> ButtonMessage:
    plural = "s" if count != 1 else ""
    return ButtonMessage(
        body=f"Great! Got {count} photo{plural} 📸\n\nAny flaws or special notes?",
        options=[
            ReplyOption(id=SKIP_DETAILS, title="NO, SKIP"),
            ReplyOption(id=ADD_DETAILS, title="YES, ADD"),
        ],
    )


def summary(draft: ListingDraft) -> ButtonMessage:
    notes = draft.notes or ""
    lines = [
        "📋 *Ready to submit!*",
        "",
        f"📦 {listing_title(draft)}",
        f"📏 Size: {display_value(draft, 'size')}",
        f"✨ Condition: {display_value(draft, 'condition')}",
        f"💰 Price: {display_value(draft, 'price')}",
        f"📸 Photos: {len(draft.photo_refs or [])}",
    ]
    if notes:
        lines.append(f"📝 Notes: {notes[:50]}{'...' if len(notes) > 50 else ''}")
    lines.extend(["", "Look good?"])
    return ButtonMessage(
        body="\n".join(lines),
        options=[
            ReplyOption(id=SUBMIT, title="YES, SUBMIT ✓"),
            ReplyOption(id=EDIT, title="EDIT"),
            ReplyOption(id=CANCEL, title="CANCEL"),
        ],
    )


def not_ready(missing: list[str], photo_count: int, min_photos: int) -> TextMessage:
    needs = [FIELD_LABELS.get(field, field) for field in missing]
    if photo_count < min_photos:
        needs.append(f"{min_photos - photo_count} more photo(s)")
    return text(f"Almost there! Still needed: {', '.join(needs)}. Tap EDIT to fill them in.")


def choose_field_to_edit(draft: ListingDraft) -> ListMessage:
    rows = []
    for number, field in enumerate(EDITABLE_FIELDS, start=1):
        current = display_value(draft, field) or "not set"
        rows.append(
            ReplyOption(
                id=f"{EDIT_PREFIX}{field}",
                title=f"{number}. {FIELD_LABELS[field]}",
                description=current,
            )
        )
    return ListMessage(
        body="No problem! What would you like to change? (Reply with a number)",
        button="Fields",
        sections=[ListSection(title="Fields", rows=rows)],
    )
