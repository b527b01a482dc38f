"""Authentication commands for the Meldoc CLI."""

import asyncio
import sys

import click
from rich.console import Console
from rich.panel import Panel

from meldoc_proxy.cli.config import get_credential_store, get_settings
from meldoc_proxy.cli.utils import (
    copy_to_clipboard,
    echo_error,
    echo_info,
    echo_success,
    echo_warning,
    open_browser,
)
from meldoc_proxy.core.auth import TokenResolver
from meldoc_proxy.core.device_flow import (
    DeviceFlowAuthenticator,
    DeviceFlowDenied,
    DeviceFlowError,
    DeviceFlowExpired,
    DeviceFlowTimeout,
)
from meldoc_proxy.core.store import StoreError
from meldoc_proxy.models.domain import PendingAuthentication

console = Console()


@click.group()
def auth():
    """Log in to Meldoc and manage the stored session.

    Examples:
        meldoc-mcp auth login                 # Log in through the browser
        meldoc-mcp auth status                # Show who is logged in
        meldoc-mcp auth logout                # Remove stored credentials
    """
    pass


def show_login_prompt(
    pending: PendingAuthentication, browser: bool, clipboard: bool
) -> None:
    minutes = max(1, int(pending.expires_in.total_seconds() // 60))
    console.print(
        Panel(
            f"[bold]Code:[/bold] [cyan]{pending.user_code}[/cyan]\n"
            f"[bold]URL:[/bold]  {pending.display_url}\n\n"
            f"The code expires in {minutes} minute{'s' if minutes != 1 else ''}.",
            title="Meldoc login",
            expand=False,
        )
    )

    if clipboard and copy_to_clipboard(pending.user_code):
        echo_info("Code copied to clipboard")
    if browser and not open_browser(pending.display_url):
        echo_warning("Could not open a browser, visit the URL above")


@auth.command()
@click.option("--no-browser", is_flag=True, help="Don't open the login page")
@click.option("--no-clipboard", is_flag=True, help="Don't copy the code")
def login(no_browser, no_clipboard):
    """Log in with the device flow.

    Shows a one-time code, opens the Meldoc login page and waits until
    the code is approved there. The session is saved to the credentials
    file and used by the proxy from then on.
    """
    settings = get_settings()

    async def run_login():
        authenticator = DeviceFlowAuthenticator(
            settings.api_url,
            get_credential_store(),
            app_url=settings.frontend_url,
        )
        pending = await authenticator.start()
        show_login_prompt(pending, browser=not no_browser, clipboard=not no_clipboard)

        with console.status("Waiting for approval..."):
            return await authenticator.wait_for_approval(pending.session)

    try:
        credentials = asyncio.run(run_login())
    except DeviceFlowDenied:
        echo_error("Login was denied")
        sys.exit(1)
    except (DeviceFlowExpired, DeviceFlowTimeout):
        echo_error("Login code expired. Run the command again")
        sys.exit(1)
    except DeviceFlowError as e:
        echo_error(e.message)
        sys.exit(1)
    except StoreError as e:
        echo_error(f"Could not save credentials: {e.message}")
        sys.exit(1)

    email = credentials.user.email if credentials.user else None
    echo_success(f"Logged in as {email}" if email else "Logged in")


@auth.command()
def status():
    """Show the current authentication state.

    Exits with status 1 when no token is available.
    """

    async def get_status():
        resolver = TokenResolver.from_settings(
            get_settings(), store=get_credential_store()
        )
        return await resolver.get_auth_status()

    auth_status = asyncio.run(get_status())
    if not auth_status.authenticated:
        echo_warning("Not authenticated. Run: meldoc-mcp auth login")
        sys.exit(1)

    source = auth_status.type.value if auth_status.type else "unknown"
    echo_success(f"Authenticated ({source})")
    if auth_status.user is not None:
        if auth_status.user.email:
            echo_info(f"User: {auth_status.user.email}")
        if auth_status.expires_at:
            echo_info(f"Access token expires: {auth_status.expires_at.isoformat()}")


@auth.command()
def logout():
    """Delete the stored session."""
    try:
        deleted = get_credential_store().delete()
    except StoreError as e:
        echo_error(f"Could not delete credentials: {e.message}")
        sys.exit(1)

    if deleted:
        echo_success("Logged out")
    else:
        echo_info("No stored session")
