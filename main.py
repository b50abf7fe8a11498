#!/usr/bin/env python3
"""
Channel Autopilot - Main Entry Point
Scheduled AI-video generation for content channels: ideas, prompts and jobs
created on each channel's own weekly schedule.
"""

import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from dotenv import load_dotenv

# Load local env for API keys
try:
    load_dotenv(dotenv_path=Path(__file__).parent / ".env.local")
except Exception:
    pass

from src.utils.config import Config
from src.utils.logger import setup_logging
from src.automation.timezone_clock import TimeZoneClock
from src.automation.schedule_evaluator import ScheduleEvaluator
from src.automation.run_coordinator import RunCoordinator
from src.automation.scheduler import AutomationScheduler
from src.automation.exceptions import AutomationError
from src.content_generation.idea_generator import IdeaGenerator
from src.content_generation.prompt_generator import PromptGenerator
from src.notifications.telegram_notifier import TelegramNotifier
from src.storage.channel_store import ChannelStore
from src.storage.job_store import JobStore
from src.api.automation_api import create_app, run_server

console = Console()


class AutomationSystem:
    """Wires stores, generators, coordinator and scheduler from configuration"""

    def __init__(self, config_path: str = "configs/config.yaml"):
        self.config = Config.load(config_path)
        self.logger = setup_logging(self.config)
        settings = self.config.automation

        # Storage
        self.channel_store = ChannelStore(self.config.paths.data)
        self.job_store = JobStore(self.config.paths.data)

        # Scheduling core
        self.clock = TimeZoneClock(settings.default_timezone)
        self.evaluator = ScheduleEvaluator(self.clock, settings.due_window_minutes)

        notifier = TelegramNotifier.from_config(self.config.telegram)
        self.coordinator = RunCoordinator(
            self.channel_store,
            self.job_store,
            IdeaGenerator(self.config),
            PromptGenerator(self.config),
            self.evaluator,
            settings,
            notifier=notifier,
            notify_chat_id=self.config.telegram.get_chat_id(),
        )
        self.scheduler = AutomationScheduler(self.channel_store, self.coordinator, self.evaluator, settings)

        console.print("[green]✓[/green] Channel automation initialized")

    async def start_automated_mode(self):
        """Run the scheduler loop until interrupted"""
        console.print(f"[blue]🤖[/blue] Scheduler running every "
                      f"{self.config.automation.poll_interval_minutes} min (Ctrl+C to stop)")
        try:
            await self.scheduler.start_scheduler()
        finally:
            self.scheduler.stop_scheduler()

    async def serve(self):
        """HTTP trigger surface plus the scheduler loop"""
        app = create_app(self.scheduler)
        server = self.config.server
        console.print(f"[blue]📡[/blue] API on http://{server.host}:{server.port}/api/automation")
        await asyncio.gather(
            run_server(app, server.host, server.port),
            self.start_automated_mode(),
        )

    async def run_tick(self):
        summary = await self.scheduler.run_scheduled_tick()

        table = Table(title=f"Tick at {summary.timezone_time} ({summary.timezone})")
        table.add_column("Channel")
        table.add_column("Outcome")
        table.add_column("Job ID")
        table.add_column("Error", style="red")
        for r in summary.results:
            table.add_row(f"{r.channel_name} ({r.channel_id})",
                          r.outcome.value if r.outcome else "-", r.job_id or "-", r.error or "")
        console.print(table)
        console.print(f"Evaluated {summary.evaluated}, processed {summary.processed}, "
                      f"jobs created {summary.jobs_created}, errors {summary.errors}")

    async def run_channel(self, channel_id: str):
        result = await self.scheduler.run_now(channel_id)
        console.print(f"[green]✅[/green] Job {result.job_id} created for {result.channel_name}")

    def show_status(self):
        table = Table(title="Channels")
        for column in ("ID", "Name", "Enabled", "Running", "Timezone", "Last run", "Next run"):
            table.add_column(column)
        for row in self.scheduler.get_status():
            table.add_row(row["id"], row["name"], "yes" if row["enabled"] else "no",
                          "yes" if row["running"] else "no", row["timezone"],
                          row["last_run"], row["next_run"])
        console.print(table)

    def import_channels(self, filepath: str):
        count = self.channel_store.import_channels_from_file(filepath)
        console.print(f"[green]✅[/green] Imported {count} channels")


def main():
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Channel Autopilot - scheduled AI video generation")
    parser.add_argument("--mode", choices=["auto", "serve", "tick", "run", "status", "import"],
                        default="status", help="Operation mode")
    parser.add_argument("--channel", type=str, help="Channel id for --mode run")
    parser.add_argument("--file", type=str, help="Channels file for --mode import")
    parser.add_argument("--config", type=str, default="configs/config.yaml",
                        help="Path to configuration file")

    args = parser.parse_args()

    if args.mode == "run" and not args.channel:
        parser.error("--mode run requires --channel")
    if args.mode == "import" and not args.file:
        parser.error("--mode import requires --file")

    try:
        system = AutomationSystem(args.config)

        if args.mode == "auto":
            asyncio.run(system.start_automated_mode())
        elif args.mode == "serve":
            asyncio.run(system.serve())
        elif args.mode == "tick":
            asyncio.run(system.run_tick())
        elif args.mode == "run":
            asyncio.run(system.run_channel(args.channel))
        elif args.mode == "status":
            system.show_status()
        elif args.mode == "import":
            system.import_channels(args.file)

    except KeyboardInterrupt:
        console.print("\n[yellow]⏹️[/yellow] Stopped by user")
    except AutomationError as e:
        console.print(f"[red]❌[/red] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]💥[/red] Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
