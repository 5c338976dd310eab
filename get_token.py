"""
Quick OAuth flow to get an Upstox access token.

Run this script, follow the URL, authorize, and paste the redirect URL back.
The token it prints can be set as UPSTOX_ACCESS_TOKEN (or UPSTOX_SANDBOX_TOKEN)
to run the server with the token auth method.
"""

import asyncio
import webbrowser
from urllib.parse import parse_qs, urlparse

from dotenv import load_dotenv
from pydantic import ValidationError

from upstox_mcp.auth import AuthManager
from upstox_mcp.config import AuthMethod, Settings
from upstox_mcp.errors import AuthExchangeFailedError

# Load .env file
load_dotenv()


async def exchange(auth: AuthManager, auth_code: str) -> None:
    state = await auth.exchange_code(auth_code)
    print("\nSuccess! Access token:\n")
    print(f"  {state.access_token}\n")
    print(f"Valid until: {state.token_expiry.isoformat()}")
    print("\nSet it in .env as UPSTOX_ACCESS_TOKEN (or UPSTOX_SANDBOX_TOKEN) and run:")
    print("  upstox-mcp")


def main():
    print("=" * 60)
    print("Upstox OAuth Token Generator")
    print("=" * 60)

    try:
        cfg = Settings(upstox_auth_method=AuthMethod.OAUTH)
    except ValidationError as e:
        print(f"ERROR: {e}")
        print("Set UPSTOX_API_KEY and UPSTOX_API_SECRET (or the sandbox pair) in .env")
        return

    auth = AuthManager(cfg, timeout=cfg.upstox_timeout)
    auth_url = auth.authorization_url()

    print("\n1. Opening browser to authorize...\n")
    print(f"   If browser doesn't open, go to:\n   {auth_url}\n")

    webbrowser.open(auth_url)

    print("2. Log in to Upstox and authorize the app.")
    print("3. You'll be redirected to a URL (may show an error page - that's OK)")
    print("4. Copy the ENTIRE URL from your browser's address bar and paste below.\n")

    redirect_url = input("Paste the redirect URL here: ").strip()

    # Parse the authorization code from the URL
    params = parse_qs(urlparse(redirect_url).query)

    if "code" not in params:
        print("\nERROR: No authorization code found in URL.")
        print("Make sure you copied the entire URL including the ?code=... part")
        return

    print("\nExchanging code for access token...")
    try:
        asyncio.run(exchange(auth, params["code"][0]))
    except AuthExchangeFailedError as e:
        print(f"\nERROR: {e.message}")


if __name__ == "__main__":
    main()
