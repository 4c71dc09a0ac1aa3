"""E-Baston voice CLI.

Text stands in for speech: each typed line is one final transcript and
each spoken reply is printed.
"""

import argparse
import asyncio
import sys

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from ebaston import __version__
from ebaston.assistant import GlobalVoiceAssistant
from ebaston.config_loader import load_config
from ebaston.database import DatabaseManager
from ebaston.health import run_health_checks
from ebaston.logging_config import get_logger, setup_logging
from ebaston.notifications import ReminderScheduler
from ebaston.parsers import parse_days, parse_times
from ebaston.providers import create_provider
from ebaston.resolver import RemoteIntentResolver
from ebaston.session import VoiceModuleCoordinator
from ebaston.speech import ConsoleRecognizer, ConsoleSpeaker
from ebaston.wizard import VoiceMedicineWizard, WizardState

console = Console()
log = get_logger("ebaston")


class ConsoleNavigator:
    def navigate(self, screen: str) -> None:
        console.print(f"[magenta]➜ {screen}[/magenta]")


class ConsoleUrlOpener:
    """Only tel: links can be 'opened' from a terminal."""

    def can_open(self, uri: str) -> bool:
        return uri.startswith("tel:")

    def open(self, uri: str) -> None:
        console.print(f"[magenta]📞 {uri}[/magenta]")


def _open_db(config: dict) -> DatabaseManager:
    db = DatabaseManager(config["database"]["path"])
    db.init_db()
    return db


def _resolver(config: dict) -> RemoteIntentResolver:
    return RemoteIntentResolver(
        create_provider(config),
        prefilter=config.get("resolver", {}).get("prefilter", True),
    )


def _build_assistant(config: dict, recognizer=None) -> GlobalVoiceAssistant:
    db = _open_db(config)
    return GlobalVoiceAssistant(
        db=db,
        resolver=_resolver(config),
        speaker=ConsoleSpeaker(console),
        recognizer=recognizer or ConsoleRecognizer(console),
        coordinator=VoiceModuleCoordinator(),
        navigator=ConsoleNavigator(),
        url_opener=ConsoleUrlOpener(),
        scheduler=ReminderScheduler(db),
        user_id=config["user_id"],
        config=config,
    )


def _show(assistant: GlobalVoiceAssistant):
    if assistant.error:
        console.print(f"[red]✗ {assistant.error}[/red]")
    elif assistant.response:
        console.print(f"[green]✓ {assistant.response}[/green]")


# -- Commands --


def cmd_assistant(args, config: dict):
    recognizer = ConsoleRecognizer(console)
    assistant = _build_assistant(config, recognizer)
    console.print("[bold]🎙️ Sesli Asistan[/bold]  [dim](Ctrl-D ile çıkış)[/dim]")

    async def session():
        while not recognizer.eof:
            await assistant.open()
            while assistant.is_open:
                if assistant.closing:
                    await asyncio.sleep(0.1)
                    continue
                await assistant.listen()
                _show(assistant)
                if recognizer.eof:
                    assistant.close()
            console.print("[dim]Asistan kapandı.[/dim]")

    asyncio.run(session())


def cmd_command(args, config: dict):
    assistant = _build_assistant(config)

    async def once():
        await assistant.open()
        await assistant.handle_command(args.message)
        _show(assistant)
        if assistant.pending is not None:
            if args.yes or Confirm.ask("Onaylıyor musunuz?", console=console):
                await assistant.confirm()
            else:
                await assistant.cancel()
            _show(assistant)
        assistant.close()

    asyncio.run(once())


def cmd_resolve(args, config: dict):
    db = _open_db(config)
    resolver = _resolver(config)
    medicines = db.fetch_medicines(config["user_id"])
    members = db.fetch_family_members(config["user_id"])
    intent = asyncio.run(resolver.resolve(args.message, medicines, members))

    table = Table(title=f"Intent: {intent.action}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name, value in vars(intent).items():
        table.add_row(name, str(getattr(value, "value", value)))
    console.print(table)


def cmd_wizard(args, config: dict):
    db = _open_db(config)
    recognizer = ConsoleRecognizer(console)
    wizard = VoiceMedicineWizard(
        db=db,
        resolver=_resolver(config),
        speaker=ConsoleSpeaker(console),
        recognizer=recognizer,
        coordinator=VoiceModuleCoordinator(),
        scheduler=ReminderScheduler(db),
        user_id=config["user_id"],
        config=config,
        on_saved=lambda med: console.print(
            f"[green]✓ {med['name']} · {', '.join(med['days'])} · {', '.join(med['times'])}[/green]"
        ),
    )

    async def run():
        await wizard.start()
        while wizard.is_open:
            if recognizer.eof:
                wizard.close()
                break
            if wizard.state is WizardState.SAVE_FAILED and not Confirm.ask(
                "Tekrar denensin mi?", console=console
            ):
                wizard.close()
                break
            await wizard.retry()

    asyncio.run(run())


def cmd_status(args, config: dict):
    report = run_health_checks(config)
    console.print(f"[bold]E-Baston {__version__}[/bold]  provider: {config.get('provider')}")
    for line in report.summary_lines():
        console.print(line)
    if report.has_critical_failure:
        sys.exit(1)


def cmd_seed(args, config: dict):
    db = _open_db(config)
    user_id = config["user_id"]
    if args.kind == "member":
        member_id = db.add_family_member(user_id, args.name, args.phone)
        console.print(f"[green]Family member #{member_id}: {args.name}[/green]")
        return
    saved = db.insert_medicine(
        user_id,
        name=args.name,
        dose=args.dose or "",
        days=parse_days(args.days or ""),
        times=parse_times(args.times or ""),
    )
    count = ReminderScheduler(db).schedule_medicine(saved)
    console.print(f"[green]Medicine #{saved['id']}: {saved['name']} ({count} reminders)[/green]")


def main():
    parser = argparse.ArgumentParser(
        prog="ebaston",
        description="E-Baston - Turkish voice assistant for medicines, family and plans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ebaston assistant                         Interactive voice assistant (text mode)
  ebaston command -m "Aspirin aldım"        Run one command
  ebaston resolve -m "yarın doktora git"    Show the resolved intent only
  ebaston wizard                            Add a medicine step by step
  ebaston seed member Ayşe --phone "0555 123 45 67"
        """,
    )
    parser.add_argument("--config", help="Path to a config YAML file")
    parser.add_argument("--log-level", help="Override logging.level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p = subparsers.add_parser("assistant", help="Start the interactive voice assistant")
    p.set_defaults(func=cmd_assistant)

    p = subparsers.add_parser("command", help="Resolve and execute one utterance")
    p.add_argument("-m", "--message", required=True, help="Utterance text")
    p.add_argument("-y", "--yes", action="store_true", help="Confirm additions without asking")
    p.set_defaults(func=cmd_command)

    p = subparsers.add_parser("resolve", help="Print the resolved intent without executing it")
    p.add_argument("-m", "--message", required=True, help="Utterance text")
    p.set_defaults(func=cmd_resolve)

    p = subparsers.add_parser("wizard", help="Add a medicine by answering five questions")
    p.set_defaults(func=cmd_wizard)

    p = subparsers.add_parser("status", help="Run health checks")
    p.set_defaults(func=cmd_status)

    p = subparsers.add_parser("seed", help="Add a medicine or family member")
    p.add_argument("kind", choices=["medicine", "member"])
    p.add_argument("name")
    p.add_argument("--phone", help="Family member phone number")
    p.add_argument("--dose", help="Medicine dose")
    p.add_argument("--days", help='Spoken days, e.g. "hafta içi"')
    p.add_argument("--times", help='Spoken times, e.g. "sabah akşam"')
    p.set_defaults(func=cmd_seed)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = load_config(args.config)
        log_cfg = config.get("logging", {})
        setup_logging(
            level=args.log_level or log_cfg.get("level", "INFO"),
            log_dir=log_cfg.get("dir"),
            console=args.command not in ("assistant", "wizard"),
        )
        args.func(args, config)
    except KeyboardInterrupt:
        console.print("\n\n👋 Güle güle!")
        sys.exit(0)
    except Exception as e:
        log.error("Command %s failed: %s", args.command, e)
        console.print(f"\n[red]❌ Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
