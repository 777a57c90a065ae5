"""Telegram application wiring for Flashdeck."""

from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
)

from .agent import StudyAgent


def build_application(bot_token: str, agent: StudyAgent) -> Application:
    """Configure the Telegram application instance."""
    application = ApplicationBuilder().token(bot_token).build()
    application.add_handler(CommandHandler("start", agent.handle_start))
    application.add_handler(CommandHandler("newdeck", agent.handle_new_deck))
    application.add_handler(CommandHandler("addcard", agent.handle_add_card))
    application.add_handler(CommandHandler("decks", agent.handle_decks))
    application.add_handler(CommandHandler("study", agent.handle_study))
    application.add_handler(CommandHandler("cram", agent.handle_cram))
    application.add_handler(CommandHandler("limit", agent.handle_limit))
    application.add_handler(CallbackQueryHandler(agent.handle_begin_study, pattern=r"^st_begin:"))
    application.add_handler(CallbackQueryHandler(agent.handle_cram_callback, pattern="^st_cram$"))
    application.add_handler(CallbackQueryHandler(agent.handle_show_card, pattern=r"^st_show:"))
    application.add_handler(CallbackQueryHandler(agent.handle_rate_card, pattern=r"^st_rate:"))
    application.add_handler(CallbackQueryHandler(agent.handle_study_again, pattern="^st_again$"))
    return application
