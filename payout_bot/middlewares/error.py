import logging
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery
from payout_bot.utils.ui import UIMessages


class GlobalErrorMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        try:
            return await handler(event, data)
        except Exception as e:
            logging.exception(f"Unhandled exception in bot update: {e}")

            if isinstance(event, Message):
                try:
                    await event.answer(UIMessages.warning(
                        "<b>Something went wrong.</b>\n\nThe error was logged. Please try again later."
                    ))
                except Exception as send_error:
                    logging.warning(f"Could not report error to chat: {send_error}")

            elif isinstance(event, CallbackQuery):
                try:
                    await event.answer("⚠️ Something went wrong. Please try again later.", show_alert=True)
                except Exception as send_error:
                    logging.warning(f"Could not report error to chat: {send_error}")

            # Swallowed so polling keeps running; logged above
            return None
