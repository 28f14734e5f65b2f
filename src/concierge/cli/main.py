"""
Main CLI application for the concierge workflow.

Runs chat turns against the configured agents and manages the local
configuration and stored chat sessions.
"""

import asyncio
import json
import logging
import sys
from typing import Optional
from uuid import uuid4

import click
import yaml

from concierge.lib.config import ConciergeConfig, ConfigurationError, initialize_config
from concierge.lib.logging_config import get_audit_logger, setup_logging
from concierge.lib.metrics import initialize_metrics
from concierge.lib.observability import initialize_telemetry, shutdown_telemetry
from concierge.services.chat_service import ChatService
from concierge.services.message_store import FileMessageStore, MessageStore, SessionNotFoundError
from concierge.services.workflow_orchestrator import build_workflow


logger = logging.getLogger("concierge.cli")
audit_logger = get_audit_logger()


class ConciergeApplication:
    """Wires configuration, logging, telemetry and the chat service."""

    def __init__(self, config_path: Optional[str] = None, debug: bool = False):
        self.config_path = config_path
        self.debug = debug
        self.config: Optional[ConciergeConfig] = None
        self.store: Optional[MessageStore] = None
        self.chat_service: Optional[ChatService] = None

    def initialize(self) -> None:
        """Load configuration and build the services."""
        config_manager = initialize_config(self.config_path)
        self.config = config_manager.get_config()
        if self.debug:
            self.config.debug = True

        setup_logging(self.config.logging, level="DEBUG" if self.config.debug else None)

        if self.config.observability.enabled:
            telemetry_manager = initialize_telemetry(self.config.observability)
            initialize_metrics(telemetry_manager.get_meter())
            logger.info("Observability initialized")

        self.store = FileMessageStore(self.config.chat.storage_directory)
        config = self.config
        self.chat_service = ChatService(
            store=self.store,
            workflow_factory=lambda: build_workflow(config),
            settings=config.chat,
        )

        audit_logger.log_session_event(
            event_type="system_startup",
            session_id="system",
            action="initialize",
            result="success",
            metadata={
                "config_path": self.config.config_file_path,
                "guardrails": self.config.guardrails.to_guardrail_config().names,
            }
        )

    def shutdown(self) -> None:
        if self.config is not None and self.config.observability.enabled:
            shutdown_telemetry()


# CLI Commands

@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """Sleads customer concierge CLI."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['debug'] = debug

    if debug:
        logging.basicConfig(level=logging.DEBUG)


def _application(ctx) -> ConciergeApplication:
    app = ConciergeApplication(config_path=ctx.obj.get('config_path'), debug=ctx.obj.get('debug', False))
    app.initialize()
    return app


@cli.command()
@click.argument('message')
@click.option('--session-id', '-s', help='Chat session to continue (default: new session)')
@click.option('--user-id', '-u', default=None, help='Owner to record on a new session')
@click.option('--output-format', '-f', type=click.Choice(['text', 'json']), default='text', help='Output format')
@click.pass_context
def chat(ctx, message, session_id, user_id, output_format):
    """Send one MESSAGE and print the reply."""
    session_id = session_id or str(uuid4())
    try:
        app = _application(ctx)
        try:
            reply = asyncio.run(app.chat_service.send_message(session_id, message, user_id=user_id))
        finally:
            app.shutdown()

        if output_format == 'json':
            click.echo(json.dumps({"session_id": session_id, "reply": reply}, indent=2))
        else:
            click.echo(reply)

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error sending message: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--session-id', '-s', help='Chat session to continue (default: new session)')
@click.option('--user-id', '-u', default=None, help='Owner to record on a new session')
@click.pass_context
def repl(ctx, session_id, user_id):
    """Chat interactively until 'exit' or end of input."""
    session_id = session_id or str(uuid4())
    try:
        app = _application(ctx)
        try:
            asyncio.run(_repl_impl(app.chat_service, session_id, user_id))
        finally:
            app.shutdown()

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error in chat session: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('session_id')
@click.option('--output-format', '-f', type=click.Choice(['text', 'json']), default='text', help='Output format')
@click.pass_context
def history(ctx, session_id, output_format):
    """Show the stored messages of SESSION_ID."""
    try:
        app = _application(ctx)
        session, messages = asyncio.run(_history_impl(app.store, session_id))

        if session is None:
            click.echo(f"Session '{session_id}' not found", err=True)
            sys.exit(1)

        if output_format == 'json':
            click.echo(json.dumps({
                "session": session.model_dump(mode="json"),
                "messages": [m.model_dump(mode="json") for m in messages],
            }, indent=2))
        else:
            click.echo(f"Session: {session.session_id}")
            click.echo(f"Created at: {session.created_at.isoformat()}")
            click.echo(f"Messages: {len(messages)}")
            for message in messages:
                click.echo(f"\n[{message.created_at.isoformat()}] {message.role}:")
                click.echo(message.content)

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error reading history: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--limit', '-l', default=10, type=int, help='Maximum number of sessions to show')
@click.option('--user-id', '-u', default=None, help='Only show sessions owned by this user')
@click.pass_context
def sessions(ctx, limit, user_id):
    """List stored chat sessions, most recent first."""
    try:
        app = _application(ctx)
        found = asyncio.run(app.store.list_sessions(user_id=user_id))

        if not found:
            click.echo("No sessions found.")
            return

        for session in found[:limit]:
            owner = f" ({session.user_id})" if session.user_id else ""
            click.echo(f"{session.session_id}{owner}  updated {session.updated_at.isoformat()}")

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('session_id')
@click.option('--user-id', '-u', required=True, help='Owner of the session')
@click.confirmation_option(prompt='Delete this session and all of its messages?')
@click.pass_context
def delete(ctx, session_id, user_id):
    """Delete SESSION_ID and its messages."""
    try:
        app = _application(ctx)
        asyncio.run(app.store.delete_session(session_id, user_id))
        click.echo(f"Deleted session {session_id}")

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except (SessionNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx):
    """Validate the concierge configuration."""
    try:
        config_manager = initialize_config(ctx.obj.get('config_path'))
        config = config_manager.get_config()
        warnings = config_manager.validate_config()

        click.echo("Configuration validation completed successfully!")
        click.echo(f"Configuration file: {config.config_file_path}")
        click.echo(f"Environment: {config.observability.environment}")
        click.echo(f"Input guardrails: {', '.join(config.guardrails.to_guardrail_config().names) or 'none'}")
        click.echo(f"Detector errors: {'fail closed' if config.guardrails.fail_closed else 'fail open'}")
        click.echo(f"Agent overrides: {len(config.agents)}")

        if warnings:
            click.echo("\nWarnings:")
            for warning in warnings:
                click.echo(f"  - {warning}")
        else:
            click.echo("\nNo warnings found.")

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.pass_context
def export_config(ctx, output):
    """Export the current configuration (the API key is left out)."""
    try:
        config_manager = initialize_config(ctx.obj.get('config_path'))
        config = config_manager.get_config()

        config_dict = config.model_dump(mode="json", exclude={"llm": {"api_key"}})
        rendered = yaml.dump(config_dict, default_flow_style=False, indent=2)

        if output:
            with open(output, 'w') as f:
                f.write(rendered)
            click.echo(f"Configuration exported to: {output}")
        else:
            click.echo(rendered)

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Error exporting configuration: {e}", err=True)
        sys.exit(1)


async def _repl_impl(chat_service: ChatService, session_id: str, user_id: Optional[str] = None) -> None:
    click.echo(f"Session: {session_id} (type 'exit' to quit)")
    while True:
        try:
            message = await asyncio.to_thread(input, "> ")
        except EOFError:
            break

        message = message.strip()
        if not message:
            continue
        if message.lower() in ("exit", "quit"):
            break

        reply = await chat_service.send_message(session_id, message, user_id=user_id)
        click.echo(reply)


async def _history_impl(store: MessageStore, session_id: str):
    session = await store.get_session(session_id)
    messages = await store.get_history(session_id) if session else []
    return session, messages


if __name__ == '__main__':
    cli()
