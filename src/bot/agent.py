"""Telegram handlers that run study sessions for a chat."""

from __future__ import annotations

import logging
from contextlib import suppress
from datetime import datetime, timezone
from html import escape
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ParseMode
from telegram.ext import ContextTypes

from src.app.settings import StudyConfig
from src.db.cards import CardPayload, SqlCardStore, create_card
from src.db.counters import SqlCounterStore
from src.db.decks import DeckPayload, create_deck, get_deck, list_decks
from src.db.users import get_effective_new_cards_per_day, set_new_cards_per_day, upsert_user
from src.study import (
    DailyNewCardCounter,
    InvalidArgument,
    NotFound,
    SessionState,
    StudyCard,
    StudyError,
    StudyQueueBuilder,
    StudyScope,
    StudySession,
)


LOGGER = logging.getLogger(__name__)

RATING_BUTTONS: Tuple[Tuple[str, int], ...] = (
    ("Failed", 0),
    ("Hard", 1),
    ("Good", 3),
    ("Easy", 5),
)
DEFAULT_LABELS = ("Question", "Answer")


class StudyAgent:
    """Handles Telegram updates by driving one ``StudySession`` per chat."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Optional[StudyConfig] = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or StudyConfig()
        self._store = SqlCardStore(session_factory)
        self._counter = DailyNewCardCounter(SqlCounterStore(session_factory), self._config.timezone)
        self._builder = StudyQueueBuilder(self._store, self._counter)
        self._sessions: Dict[int, StudySession] = {}
        self._labels: Dict[int, Dict[int, Tuple[str, str]]] = {}
        self._shown_at: Dict[int, datetime] = {}

    def get_session(self, chat_id: int) -> Optional[StudySession]:
        return self._sessions.get(chat_id)

    async def _store_user_profile(
        self,
        chat_id: int,
        first_name: Optional[str],
        last_name: Optional[str],
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await upsert_user(session, chat_id, first_name, last_name)

    async def _register_sender(self, update: Update) -> Optional[int]:
        chat = update.effective_chat
        if chat is None:
            return None
        user = update.effective_user
        if user is not None:
            await self._store_user_profile(
                chat.id,
                getattr(user, "first_name", None),
                getattr(user, "last_name", None),
            )
        return chat.id

    async def handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Greet the user and list the available commands."""
        if not update.message:
            return
        if await self._register_sender(update) is None:
            return

        greeting = (
            "Hi! I help you memorise flashcards with spaced repetition.\n\n"
            "/newdeck <name> [| parent deck id] - create a deck\n"
            "/addcard <deck id> <front> | <back> - add a card\n"
            "/decks - list your decks\n"
            "/study [deck id] - study due and new cards\n"
            "/cram - toggle cram mode for the current session\n"
            "/limit <n> - set how many new cards you see per day"
        )
        await update.message.reply_text(greeting)

    async def handle_new_deck(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        chat_id = await self._register_sender(update)
        if chat_id is None:
            return

        raw = " ".join(context.args or []).strip()
        name, _, parent = raw.partition("|")
        parent_deck_id: Optional[int] = None
        if parent.strip():
            try:
                parent_deck_id = int(parent.strip())
            except ValueError:
                await update.message.reply_text("The parent deck id must be a number.")
                return

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    deck = await create_deck(
                        session,
                        chat_id,
                        DeckPayload(name=name, parent_deck_id=parent_deck_id),
                    )
                    deck_id, deck_name = deck.id, deck.name
        except InvalidArgument:
            await update.message.reply_text("Usage: /newdeck <name> [| parent deck id]")
            return
        except NotFound:
            await update.message.reply_text("The parent deck was not found.")
            return

        await update.message.reply_text(
            f"Deck <b>{self._escape_html(deck_name)}</b> created (id {deck_id}).",
            parse_mode=ParseMode.HTML,
        )

    async def handle_add_card(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        chat_id = await self._register_sender(update)
        if chat_id is None:
            return

        args = list(context.args or [])
        usage = "Usage: /addcard <deck id> <front> | <back>"
        if len(args) < 2:
            await update.message.reply_text(usage)
            return
        try:
            deck_id = int(args[0])
        except ValueError:
            await update.message.reply_text(usage)
            return

        front, separator, back = " ".join(args[1:]).partition("|")
        if not separator:
            await update.message.reply_text(usage)
            return

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    card = await create_card(session, chat_id, deck_id, CardPayload(front=front, back=back))
                    card_id = card.id
        except InvalidArgument:
            await update.message.reply_text(usage)
            return
        except NotFound:
            await update.message.reply_text("Deck not found.")
            return

        await update.message.reply_text(f"Card {card_id} added.")

    async def handle_decks(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        chat_id = await self._register_sender(update)
        if chat_id is None:
            return

        async with self._session_factory() as session:
            decks = await list_decks(session, chat_id)

        if not decks:
            await update.message.reply_text("You have no decks yet. Create one with /newdeck <name>.")
            return

        children: Dict[Optional[int], List] = {}
        for deck in decks:
            children.setdefault(deck.parent_deck_id, []).append(deck)

        lines: List[str] = ["<b>Your decks</b>"]
        buttons: List[List[InlineKeyboardButton]] = []

        visited: set[int] = set()

        def walk(parent_id: Optional[int], depth: int) -> None:
            for deck in children.get(parent_id, []):
                if deck.id in visited:
                    continue
                visited.add(deck.id)
                lines.append(f"{'  ' * depth}• {self._escape_html(deck.name)} (id {deck.id})")
                buttons.append(
                    [InlineKeyboardButton(f"Study {deck.name}", callback_data=f"st_begin:{deck.id}")]
                )
                walk(deck.id, depth + 1)

        walk(None, 0)
        for deck in decks:
            if deck.id not in visited:
                walk(deck.parent_deck_id, 0)

        buttons.append([InlineKeyboardButton("Study all decks", callback_data="st_begin:all")])
        await update.message.reply_text(
            "\n".join(lines),
            parse_mode=ParseMode.HTML,
            reply_markup=InlineKeyboardMarkup(buttons),
        )

    async def handle_limit(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        chat_id = await self._register_sender(update)
        if chat_id is None:
            return

        args = context.args or []
        if not args:
            async with self._session_factory() as session:
                limit = await get_effective_new_cards_per_day(session, chat_id, self._config.new_cards_per_day)
            await update.message.reply_text(f"You see up to {limit} new cards per day.")
            return

        try:
            limit = int(args[0])
            async with self._session_factory() as session:
                async with session.begin():
                    await set_new_cards_per_day(session, chat_id, limit)
        except (ValueError, InvalidArgument):
            await update.message.reply_text("Usage: /limit <non-negative number>")
            return

        await update.message.reply_text(f"New cards per day set to {limit}.")

    async def handle_study(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        chat_id = await self._register_sender(update)
        if chat_id is None:
            return

        deck_id: Optional[int] = None
        args = context.args or []
        if args:
            try:
                deck_id = int(args[0])
            except ValueError:
                await update.message.reply_text("Usage: /study [deck id]")
                return

        await self._begin_and_present(update.message, chat_id, deck_id)

    async def handle_begin_study(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        target = query.data.partition(":")[2]
        deck_id: Optional[int] = None
        if target != "all":
            try:
                deck_id = int(target)
            except ValueError:
                await query.answer("Invalid deck.", show_alert=True)
                return

        await query.answer()
        await self._begin_and_present(message, message.chat.id, deck_id)

    async def _begin_and_present(self, message: Message, chat_id: int, deck_id: Optional[int]) -> None:
        try:
            study = await self.begin_session(chat_id, deck_id)
        except NotFound:
            await message.reply_text("Deck not found.")
            return
        except StudyError:
            LOGGER.exception("Could not start a study session for chat %s.", chat_id)
            await message.reply_text("Could not load your cards. Please try again later.")
            return

        await self._present(message, chat_id, study)

    async def begin_session(
        self,
        chat_id: int,
        deck_id: Optional[int],
        *,
        cram_mode: bool = False,
        now: Optional[datetime] = None,
    ) -> StudySession:
        """Build a fresh study session for the chat and make it current."""
        async with self._session_factory() as session:
            if deck_id is not None:
                await get_deck(session, chat_id, deck_id)
            limit = await get_effective_new_cards_per_day(session, chat_id, self._config.new_cards_per_day)
            decks = await list_decks(session, chat_id)

        study = StudySession(
            self._store,
            self._builder,
            self._counter,
            StudyScope(chat_id=chat_id, deck_id=deck_id),
            limit,
            cram_mode=cram_mode,
        )
        await study.start(now)
        self._sessions[chat_id] = study
        self._labels[chat_id] = {deck.id: (deck.front_label, deck.back_label) for deck in decks}
        return study

    async def handle_cram(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        chat_id = await self._register_sender(update)
        if chat_id is None:
            return
        await self._toggle_cram(update.message, chat_id)

    async def handle_cram_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None:
            return
        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return
        await query.answer()
        await self._toggle_cram(message, message.chat.id)

    async def _toggle_cram(self, message: Message, chat_id: int) -> None:
        study = self._sessions.get(chat_id)
        try:
            if study is None:
                study = await self.begin_session(chat_id, None, cram_mode=True)
            else:
                await study.toggle_cram_mode()
        except StudyError:
            LOGGER.exception("Could not toggle cram mode for chat %s.", chat_id)
            await message.reply_text("Could not load your cards. Please try again later.")
            return

        await message.reply_text("Cram mode is on." if study.cram_mode else "Cram mode is off.")
        await self._present(message, chat_id, study)

    async def handle_show_card(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        parts = query.data.split(":")
        if len(parts) != 2 or parts[0] != "st_show":
            await query.answer()
            return

        try:
            card_id = int(parts[1])
        except ValueError:
            await query.answer("Invalid request.", show_alert=True)
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        study = self._sessions.get(message.chat.id)
        card = study.current_card if study is not None else None
        if card is None or card.id != card_id:
            await query.answer("This card is no longer being studied.", show_alert=True)
            return

        answer = self._format_card_answer(message.chat.id, card)
        try:
            await query.edit_message_text(
                answer,
                parse_mode=ParseMode.HTML,
                reply_markup=self._build_rating_keyboard(card.id),
            )
        except Exception:  # pragma: no cover - best effort update
            LOGGER.debug("Could not reveal card answer.", exc_info=True)
            await message.reply_text(
                answer,
                parse_mode=ParseMode.HTML,
                reply_markup=self._build_rating_keyboard(card.id),
            )

        await query.answer()

    async def handle_rate_card(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        parts = query.data.split(":")
        if len(parts) != 3 or parts[0] != "st_rate":
            await query.answer()
            return

        try:
            card_id = int(parts[1])
            score = int(parts[2])
        except ValueError:
            await query.answer("Invalid rating.", show_alert=True)
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        chat_id = message.chat.id
        study = self._sessions.get(chat_id)
        if study is None:
            await query.answer("Start a session with /study first.", show_alert=True)
            return

        now = datetime.now(timezone.utc)
        shown_at = self._shown_at.get(chat_id)
        time_taken = max(0, int((now - shown_at).total_seconds())) if shown_at else 0

        try:
            card = await study.rate(card_id, score, time_taken=time_taken, now=now)
        except InvalidArgument:
            await query.answer("This card is no longer being studied.", show_alert=True)
            return
        except StudyError:
            LOGGER.exception("Could not record rating for card %s.", card_id)
            await query.answer("Could not save your rating. Please try again.", show_alert=True)
            return

        try:
            await query.edit_message_reply_markup(reply_markup=None)
        except Exception:  # pragma: no cover - best effort cleanup
            LOGGER.debug("Could not clear card rating markup.", exc_info=True)

        await query.answer("Rating saved.")
        await message.reply_text(f"Next review {self._describe_interval(card.interval)}.")
        await self._present(message, chat_id, study)

    async def handle_study_again(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None:
            return
        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        study = self._sessions.get(message.chat.id)
        if study is None or study.state is not SessionState.COMPLETED:
            await query.answer("Start a session with /study first.", show_alert=True)
            return

        study.restart()
        await query.answer()
        await self._present(message, message.chat.id, study)

    async def _present(self, message: Message, chat_id: int, study: StudySession) -> None:
        """Send whatever the session shows next: a question or the closing summary."""
        if study.is_empty:
            await message.reply_text(
                "<b>All caught up!</b>\nYou have no cards due for review right now.",
                parse_mode=ParseMode.HTML,
                reply_markup=self._build_cram_markup(study.cram_mode),
            )
            return

        if study.state is SessionState.COMPLETED:
            with suppress(KeyError):
                del self._shown_at[chat_id]
            await message.reply_text(
                self._format_summary(study),
                parse_mode=ParseMode.HTML,
                reply_markup=self._build_summary_markup(),
            )
            return

        card = study.current_card
        if card is None:
            return
        self._shown_at[chat_id] = datetime.now(timezone.utc)
        await message.reply_text(
            self._format_card_question(chat_id, study, card),
            parse_mode=ParseMode.HTML,
            reply_markup=self._build_reveal_keyboard(card.id),
        )

    @staticmethod
    def _build_reveal_keyboard(card_id: int) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            [[InlineKeyboardButton("Show answer", callback_data=f"st_show:{card_id}")]]
        )

    @staticmethod
    def _build_rating_keyboard(card_id: int) -> InlineKeyboardMarkup:
        buttons = [
            InlineKeyboardButton(label, callback_data=f"st_rate:{card_id}:{score}")
            for label, score in RATING_BUTTONS
        ]
        return InlineKeyboardMarkup([buttons])

    @staticmethod
    def _build_cram_markup(cram_mode: bool) -> InlineKeyboardMarkup:
        label = "Leave cram mode" if cram_mode else "Study anyway (cram mode)"
        return InlineKeyboardMarkup([[InlineKeyboardButton(label, callback_data="st_cram")]])

    @staticmethod
    def _build_summary_markup() -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup([[InlineKeyboardButton("Study again", callback_data="st_again")]])

    @staticmethod
    def _escape_html(text: Optional[str]) -> str:
        if not text:
            return ''
        return escape(text, quote=False)

    def _labels_for(self, chat_id: int, card: StudyCard) -> Tuple[str, str]:
        return self._labels.get(chat_id, {}).get(card.deck_id, DEFAULT_LABELS)

    def _format_card_question(self, chat_id: int, study: StudySession, card: StudyCard) -> str:
        front_label, _ = self._labels_for(chat_id, card)
        position = f"Card {study.index + 1} of {len(study.queue)}"
        if study.failed_cards:
            count = len(study.failed_cards)
            position += f" ({count} failed card{'s' if count > 1 else ''} to review)"

        lines = []
        if study.cram_mode:
            lines.append('<i>Cram mode</i>')
        if study.reviewing_failed_cards:
            lines.append('<i>Reviewing failed cards</i>')
        lines.extend(
            [
                f"<i>{self._escape_html(position)}</i>",
                '',
                f"<b>{self._escape_html(front_label)}:</b> {self._escape_html(card.front)}",
                '',
                f"<i>Reviews: {card.review_count} · Success rate: {round(card.success_rate * 100)}%</i>",
            ]
        )
        return "\n".join(lines).strip()

    def _format_card_answer(self, chat_id: int, card: StudyCard) -> str:
        front_label, back_label = self._labels_for(chat_id, card)
        lines = [
            f"<b>{self._escape_html(front_label)}:</b> {self._escape_html(card.front)}",
            f"<b>{self._escape_html(back_label)}:</b> {self._escape_html(card.back)}",
            '',
            '<i>How well did you know this?</i>',
        ]
        return "\n".join(lines).strip()

    @staticmethod
    def _format_summary(study: StudySession) -> str:
        summary = study.summary
        lines = [
            "<b>Session complete!</b>",
            f"Total cards: {summary.total}",
            f"Correct: {summary.correct}",
            f"Incorrect: {summary.incorrect}",
            f"Success rate: {round(summary.success_rate * 100)}%",
        ]
        return "\n".join(lines)

    @staticmethod
    def _describe_interval(interval_days: int) -> str:
        if interval_days <= 0:
            return "very soon"
        if interval_days == 1:
            return "in 1 day"
        if interval_days % 7 == 0:
            weeks = interval_days // 7
            if weeks == 1:
                return "in 1 week"
            return f"in {weeks} weeks"
        return f"in {interval_days} days"
