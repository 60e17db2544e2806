"""Main CLI application using Typer."""
import asyncio
import signal

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from ..config import load_settings
from ..conversation import ConversationController
from ..errors import ConversationError
from ..messages import ContentType, Message, content_type, is_displayable, is_user_authored
from ..store import ChatRecorder
from .providers import configure_logging, get_context, get_store, get_transport

# Create Typer app
app = typer.Typer(
    name="convoflow",
    help="Conversation client for a streaming agent backend",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

EXIT_COMMANDS = {"/exit", "/quit"}
RETRY_COMMAND = "/retry"


def _print_message(message: Message) -> None:
    """Print a message as plain terminal lines."""
    if not is_displayable(message):
        return
    speaker = "[bold cyan]you[/]" if message.role == "user" else "[bold green]agent[/]"
    for item in message.content:
        kind = content_type(item)
        if kind is ContentType.TEXT:
            console.print(f"{speaker} ", end="")
            console.print(item.text, markup=False)
        elif kind is ContentType.TOOL_REQUEST:
            name = item.tool_call.value.name if item.tool_call.value else item.tool_call.status
            console.print(f"[dim]tool request {item.id}: {name}[/]")
        elif kind is ContentType.TOOL_CONFIRMATION_REQUEST:
            console.print(f"[yellow]confirmation needed for {item.tool_name}[/]")
        elif kind is ContentType.TOOL_RESPONSE:
            status = item.tool_result.error or item.tool_result.status
            console.print(f"[dim]tool response {item.id}: {status}[/]")
        elif kind is ContentType.CONTEXT_LENGTH_EXCEEDED:
            console.print("[yellow]Context length exceeded[/]")


@app.command()
def chat(
    resume: str | None = typer.Option(
        None,
        "--resume",
        "-r",
        help="Resume a stored chat by id"
    )
):
    """Chat with the agent. Ctrl-C stops the reply in flight."""
    settings = load_settings()
    configure_logging(settings.log_level)

    async def _chat():
        store = get_store(settings)
        await store.connect()
        transport = get_transport(settings)
        try:
            record = None
            if resume:
                record = await store.load_chat(resume)
                if record is None:
                    console.print(f"[red]Error: no stored chat '{resume}'[/red]")
                    raise typer.Exit(code=1)

            controller = ConversationController.open(
                transport, record, get_context(settings, console)
            )
            recorder = ChatRecorder(store)
            controller.add_listener(recorder)

            console.print(Panel(
                f"Session [bold]{controller.session.id}[/bold]\n"
                f"[dim]{RETRY_COMMAND} retries, /exit quits, Ctrl-C stops a reply[/dim]",
                title=controller.session.title or "convoflow",
            ))
            for message in controller.visible_messages:
                _print_message(message)

            loop = asyncio.get_running_loop()
            shown = {message.id for message in controller.messages}

            while True:
                pending = controller.take_pending_input()
                prompt_kwargs = {"default": pending} if pending else {}
                try:
                    text = await asyncio.to_thread(
                        Prompt.ask, "[bold cyan]you[/]", console=console, **prompt_kwargs
                    )
                except (EOFError, KeyboardInterrupt):
                    break
                if text.strip() in EXIT_COMMANDS:
                    break

                try:
                    if text.strip() == RETRY_COMMAND:
                        task = await controller.retry_last()
                    else:
                        task = await controller.submit(text)
                except ConversationError as e:
                    console.print(f"[red]Error: {e}[/red]")
                    continue
                if task is None:
                    continue

                stops: list[asyncio.Future] = []
                loop.add_signal_handler(
                    signal.SIGINT,
                    lambda: stops.append(asyncio.ensure_future(controller.stop())),
                )
                try:
                    await controller.wait()
                    for stop in stops:
                        await stop
                finally:
                    loop.remove_signal_handler(signal.SIGINT)

                # User turns were already echoed by the prompt
                for message in controller.messages:
                    if message.id not in shown and not is_user_authored(message):
                        _print_message(message)
                shown = {message.id for message in controller.messages}

                if stops:
                    console.print("[yellow]Stopped.[/yellow]")
                if controller.last_error is not None:
                    console.print(f"[red]Error: {controller.last_error}[/red]")
                    console.print(f"[dim]Type {RETRY_COMMAND} to retry the last message[/dim]")

            await recorder.flush()
            await controller.aclose()
        finally:
            await transport.close()
            await store.disconnect()

    asyncio.run(_chat())


@app.command()
def chats(
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Number of chats to list"
    )
):
    """List stored chats, most recent first."""
    settings = load_settings()
    configure_logging(settings.log_level)

    async def _chats():
        store = get_store(settings)
        await store.connect()
        try:
            records = await store.list_chats(limit=limit)
        finally:
            await store.disconnect()

        if not records:
            console.print("[dim]No stored chats.[/dim]")
            return

        table = Table(title="Chats")
        table.add_column("Id", style="cyan")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        for record in records:
            table.add_row(record.id, record.title, str(len(record.messages)))
        console.print(table)

    asyncio.run(_chats())


@app.command()
def tokens(session_id: str = typer.Argument(..., help="Backend session id")):
    """Show the token total the backend reports for a session."""
    settings = load_settings()
    configure_logging(settings.log_level)

    async def _tokens():
        async with get_transport(settings) as transport:
            try:
                details = await transport.fetch_session_details(session_id)
            except ConversationError as e:
                console.print(f"[red]Error: {e}[/red]")
                raise typer.Exit(code=1)
        console.print(f"Session [bold]{session_id}[/bold]: {details.metadata.total_tokens or 0} tokens")

    asyncio.run(_tokens())


if __name__ == "__main__":
    app()
