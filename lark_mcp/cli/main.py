"""
lark-mcp CLI - list, describe and call Feishu/Lark tools, manage logins, serve MCP.

Machine-readable output is a single JSON document on stdout. Errors are a
JSON envelope on stderr with exit status 1. Everything else (login prompts,
logs) goes to stderr.
"""

import asyncio
import json
import sys
import webbrowser
from typing import Any, Dict, List, NoReturn, Optional

import click
from rich.console import Console

from lark_mcp import __version__
from lark_mcp.auth import LoginHandler, TokenStore
from lark_mcp.auth.oauth import DEFAULT_LOGIN_TIMEOUT
from lark_mcp.client import LarkClient
from lark_mcp.config import Config, LarkOptions
from lark_mcp.errors import LarkMCPError
from lark_mcp.log import setup_logging
from lark_mcp.tools.dispatch import Dispatcher, parse_params
from lark_mcp.tools.naming import ToolNameCase
from lark_mcp.tools.registry import ToolRegistry
from lark_mcp.tools.schema import SUPPORTED_LANGUAGES, LocalizedTool, TokenMode, ToolResult

console = Console(stderr=True)

LANGUAGE_CHOICE = click.Choice(SUPPORTED_LANGUAGES)


def emit(document: Any) -> None:
    """Print the command's JSON document to stdout."""
    click.echo(json.dumps(document, ensure_ascii=False, indent=2))


def fail(envelope: Dict[str, Any]) -> NoReturn:
    """Print an error envelope to stderr and exit 1."""
    click.echo(json.dumps(envelope, ensure_ascii=False), err=True)
    sys.exit(1)


def load_options(config_path: Optional[str] = None, **cli_options: Any) -> LarkOptions:
    return Config.load(config_path=config_path, cli_options=cli_options).options


def print_result(result: ToolResult) -> None:
    if not result.success:
        fail(result.error_envelope())
    if isinstance(result.output, str):
        try:
            emit(json.loads(result.output))
        except ValueError:
            click.echo(result.output)
        return
    emit(result.output)


@click.group()
@click.version_option(__version__, prog_name="lark-mcp")
def cli() -> None:
    """
    Feishu/Lark open-platform tools for MCP clients.

    \b
    Examples:
        lark-mcp list-tools -t preset.im.default
        lark-mcp describe im.v1.message.create
        lark-mcp call im.v1.chat.list -a APP_ID -s APP_SECRET
        lark-mcp login -a APP_ID -s APP_SECRET
        lark-mcp mcp -a APP_ID -s APP_SECRET -t preset.default
    """


# ── Tool catalog ──────────────────────────────────────────────────────────


@cli.command("list-tools")
@click.option("--language", "-l", type=LANGUAGE_CHOICE, help="Tools language (default: en)")
@click.option("--tools", "-t", help="Tools or presets to list, comma or space separated")
@click.option("--filter", "-f", "keyword", help="Keep tools whose name, description or project contains this")
@click.option("--verbose", "-v", is_flag=True, help="Show project, access tokens, method and path")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def list_tools(
    language: Optional[str],
    tools: Optional[str],
    keyword: Optional[str],
    verbose: bool,
    debug: bool,
) -> None:
    """List the tools a preset or name list resolves to."""
    try:
        options = load_options(language=language, tools=tools, debug=debug or None)
        setup_logging(options.debug)
        selected = ToolRegistry().select(
            tools=options.tools,
            token_mode=TokenMode.AUTO,
            language=options.language,
            keyword=keyword,
        )
    except LarkMCPError as e:
        fail(e.to_dict())

    emit({
        "total": len(selected),
        "tools": [t.verbose_summary() if verbose else t.summary() for t in selected],
    })


@cli.command()
@click.argument("tool_name")
@click.option("--language", "-l", type=LANGUAGE_CHOICE, help="Tools language (default: en)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def describe(tool_name: str, language: Optional[str], debug: bool) -> None:
    """Show a tool's schema and metadata."""
    try:
        options = load_options(language=language, debug=debug or None)
        setup_logging(options.debug)
        document = ToolRegistry().describe(tool_name, options.language)
    except LarkMCPError as e:
        fail(e.to_dict())
    emit(document)


@cli.command()
@click.argument("tool_name")
@click.option("--app-id", "-a", help="Feishu/Lark app id")
@click.option("--app-secret", "-s", help="Feishu/Lark app secret")
@click.option("--domain", "-d", help="Feishu/Lark domain (default: https://open.feishu.cn)")
@click.option("--language", "-l", type=LANGUAGE_CHOICE, help="Tools language (default: en)")
@click.option("--params", "params_text", help="Tool parameters as a JSON string")
@click.option("--params-file", type=click.Path(dir_okay=False), help="Tool parameters from a JSON file")
@click.option("--user-access-token", "-u", help="User access token; the stored login is used otherwise")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (JSON or YAML)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def call(
    tool_name: str,
    app_id: Optional[str],
    app_secret: Optional[str],
    domain: Optional[str],
    language: Optional[str],
    params_text: Optional[str],
    params_file: Optional[str],
    user_access_token: Optional[str],
    config_path: Optional[str],
    debug: bool,
) -> None:
    """
    Call one tool and print its result.

    \b
    Example:
        lark-mcp call im.v1.message.list -a APP_ID -s APP_SECRET \\
            --params '{"params": {"container_id_type": "chat", "container_id": "oc_xxx"}}'
    """
    try:
        config = Config.load(
            config_path=config_path,
            cli_options={
                "app_id": app_id,
                "app_secret": app_secret,
                "domain": domain,
                "language": language,
                "user_access_token": user_access_token,
                "debug": debug or None,
            },
        )
        options = config.options
        setup_logging(options.debug)

        # Nothing reaches the network until the name and params are known good.
        registry = ToolRegistry()
        registry.require_tool(tool_name, options.language)
        params = parse_params(params_text, params_file)
        options = config.require_app_credentials()
    except LarkMCPError as e:
        fail(e.to_dict())

    result = asyncio.run(_call_tool(options, registry, tool_name, params))
    print_result(result)


async def _call_tool(
    options: LarkOptions, registry: ToolRegistry, tool_name: str, params: Dict[str, Any]
) -> ToolResult:
    async with LarkClient(options.app_id, options.app_secret, options.domain) as client:
        dispatcher = Dispatcher(
            client,
            registry=registry,
            store=TokenStore(),
            language=options.language,
            token_mode=options.token_mode,
        )
        return await dispatcher.call_tool(tool_name, params, options.user_access_token)


# ── Sessions ──────────────────────────────────────────────────────────────


@cli.command()
@click.option("--app-id", "-a", help="Feishu/Lark app id")
@click.option("--app-secret", "-s", help="Feishu/Lark app secret")
@click.option("--domain", "-d", help="Feishu/Lark domain (default: https://open.feishu.cn)")
@click.option("--host", help="Host for the OAuth callback listener (default: localhost)")
@click.option("--port", "-p", type=int, help="Port for the OAuth callback listener (default: 3000)")
@click.option("--scope", help="Permissions to request, comma or space separated")
@click.option("--timeout", type=float, default=DEFAULT_LOGIN_TIMEOUT, show_default=True,
              help="Seconds to wait for the browser redirect")
@click.option("--no-browser", is_flag=True, help="Only print the authorization URL")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (JSON or YAML)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def login(
    app_id: Optional[str],
    app_secret: Optional[str],
    domain: Optional[str],
    host: Optional[str],
    port: Optional[int],
    scope: Optional[str],
    timeout: float,
    no_browser: bool,
    config_path: Optional[str],
    debug: bool,
) -> None:
    """Log in as a user and store the user access token."""
    try:
        config = Config.load(
            config_path=config_path,
            cli_options={
                "app_id": app_id,
                "app_secret": app_secret,
                "domain": domain,
                "host": host,
                "port": port,
                "scope": scope,
                "debug": debug or None,
            },
        )
        options = config.require_app_credentials()
        setup_logging(options.debug)

        handler = LoginHandler(
            TokenStore(),
            app_id=options.app_id,
            app_secret=options.app_secret,
            domain=options.domain,
            host=options.host,
            port=options.port,
            scope=options.scope,
            timeout=timeout,
            open_browser=None if no_browser else webbrowser.open,
            notify=_show_authorization_url,
        )
        with console.status("[bold blue]Waiting for authorization...[/bold blue]"):
            record = handler.login()
    except LarkMCPError as e:
        fail(e.to_dict())

    console.print(f"[green]Logged in to app {record.app_id}[/green]")
    emit(record.session_info())


def _show_authorization_url(url: str) -> None:
    console.print("[bold]Open this URL to authorize:[/bold]")
    console.print(url, markup=False, soft_wrap=True)


@cli.command()
@click.option("--app-id", "-a", help="App to log out of; every app when omitted")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def logout(app_id: Optional[str], debug: bool) -> None:
    """Delete stored user access tokens."""
    try:
        options = load_options(debug=debug or None)
        setup_logging(options.debug)
        removed = TokenStore().logout(app_id)
    except LarkMCPError as e:
        fail(e.to_dict())
    emit({"logged_out": removed})


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def whoami(debug: bool) -> None:
    """Show stored sessions with masked tokens."""
    try:
        options = load_options(debug=debug or None)
        setup_logging(options.debug)
        sessions = TokenStore().who_am_i()
    except LarkMCPError as e:
        fail(e.to_dict())
    emit({"total": len(sessions), "sessions": sessions})


# ── MCP server ────────────────────────────────────────────────────────────


@cli.command()
@click.option("--app-id", "-a", help="Feishu/Lark app id")
@click.option("--app-secret", "-s", help="Feishu/Lark app secret")
@click.option("--domain", "-d", help="Feishu/Lark domain (default: https://open.feishu.cn)")
@click.option("--tools", "-t", help="Tools or presets to expose, comma or space separated")
@click.option("--tool-name-case", "-c", type=click.Choice([c.value for c in ToolNameCase]),
              help="Case of exposed tool names (default: snake)")
@click.option("--language", "-l", type=LANGUAGE_CHOICE, help="Tools language (default: en)")
@click.option("--token-mode", type=click.Choice([m.value for m in TokenMode]),
              help="Which access token tools are called with (default: auto)")
@click.option("--user-access-token", "-u", help="User access token; the stored login is used otherwise")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (JSON or YAML)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def mcp(
    app_id: Optional[str],
    app_secret: Optional[str],
    domain: Optional[str],
    tools: Optional[str],
    tool_name_case: Optional[str],
    language: Optional[str],
    token_mode: Optional[str],
    user_access_token: Optional[str],
    config_path: Optional[str],
    debug: bool,
) -> None:
    """Serve the selected tools to an MCP client over stdio."""
    try:
        config = Config.load(
            config_path=config_path,
            cli_options={
                "app_id": app_id,
                "app_secret": app_secret,
                "domain": domain,
                "tools": tools,
                "tool_name_case": tool_name_case,
                "language": language,
                "token_mode": token_mode,
                "user_access_token": user_access_token,
                "debug": debug or None,
            },
        )
        options = config.require_app_credentials()
        setup_logging(options.debug)
        registry = ToolRegistry()
        selected = registry.select(
            tools=options.tools,
            token_mode=options.token_mode,
            language=options.language,
        )
    except LarkMCPError as e:
        fail(e.to_dict())

    asyncio.run(_serve(options, registry, selected))


async def _serve(options: LarkOptions, registry: ToolRegistry, selected: List[LocalizedTool]) -> None:
    from lark_mcp.server import LarkMCPServer

    async with LarkClient(options.app_id, options.app_secret, options.domain) as client:
        dispatcher = Dispatcher(
            client,
            registry=registry,
            store=TokenStore(),
            language=options.language,
            token_mode=options.token_mode,
        )
        server = LarkMCPServer(
            selected,
            dispatcher,
            name_case=options.tool_name_case,
            user_access_token=options.user_access_token,
        )
        await server.run_stdio()


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
