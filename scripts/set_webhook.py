import sys
from adapters.telegram import TelegramAdapter
from core.config import settings

def register_webhook(adapter: TelegramAdapter | None = None) -> dict:
    token, secret = settings.require_telegram()
    adapter = adapter or TelegramAdapter(bot_token=token)
    url = f"{settings.public_base_url}/webhook/telegram"
    result = adapter.set_webhook(url, secret)
    if not result.get("ok"):
        raise RuntimeError(f"Telegram setWebhook failed: {result.get('description')}")
    return result


if __name__ == "__main__":
    try:
        response = register_webhook()
    except RuntimeError as exc:
        print(f"webhook registration failed: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"webhook registered: {response.get('description', 'ok')}")
