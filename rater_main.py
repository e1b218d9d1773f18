# rater_main.py
"""
Terminal rater client.

Startup
-------
1. Re-send whatever is left in the durable pending queue (once per start).
2. Log how many items the pool still holds.

Commands
--------
  survey      (default) answer items interactively
  export      write one rater's results as CSV (local fallback if the server is down)
  export-all  write every rater's results as CSV

Inside a survey, each prompt accepts a score, `b` to go back one item, or `q`
to quit early. Reaching the end of a batch asks for confirmation; declining
goes back to the last item. After a batch the rater can continue with a fresh
one. Judgments are sent when a batch ends; anything the server does not
confirm is kept on disk and re-sent on the next start.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from survey.config import (
    HTTP_TIMEOUT,
    LOG_FORMAT,
    LOG_LEVEL,
    SCORE_MAX,
    SCORE_MIN,
    SURVEY_BASE_URL,
    SURVEY_STATE_DIR,
)
from survey.errors import StorageUnavailable, TransientDeliveryError, ValidationError
from survey.exporter import export_all_results, export_rater_results, write_export
from survey.judgment_sync import JudgmentSync
from survey.local_state import LocalStateStore, PendingQueue
from survey.session_runner import BatchOutcome, SessionRunner, SessionState, StopReason
from survey.survey_client import SurveyClient
from survey.survey_types import DeliveryOutcome, Item, Judgment
from survey.usage_accounting import UsageAccountant

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("survey_rater")


class TerminalUI:
    """input()/print() front end; input runs in a thread so background sends keep going."""

    async def ask(self, prompt: str) -> str:
        return (await asyncio.to_thread(input, prompt)).strip()

    async def confirm(self, question: str) -> bool:
        answer = await self.ask(f"{question} [y/N] ")
        return answer.lower() in ("y", "yes")

    def say(self, text: str) -> None:
        print(text, flush=True)

    def show_item(self, item: Item, progress: tuple) -> None:
        done, cap = progress
        pct = round(done / cap * 100) if cap else 0
        self.say("")
        self.say(f"--- {done} / {cap} ({pct}%) ---")
        self.say("[Strategy]")
        self.say(item.text_a)
        self.say("[Sustainability]")
        self.say(item.text_b)


async def answer_batch(runner: SessionRunner, ui: TerminalUI) -> List[DeliveryOutcome]:
    """Run the current batch until the rater accepts a stop."""
    while True:
        if runner.state == SessionState.CONFIRMING:
            if runner.stop_reason == StopReason.CAP_REACHED:
                accepted = await ui.confirm("That was the last item. Finish the survey?")
            else:
                accepted = await ui.confirm("Quit before finishing this batch?")
            outcomes = await runner.confirm_stop(accepted)
            if runner.state in (SessionState.COMPLETED, SessionState.EXITED_EARLY):
                return outcomes
            continue

        item = runner.current_item()
        if item is None:
            raise RuntimeError(f"No current item in state {runner.state.name}")
        ui.show_item(item, runner.progress)

        answer = await ui.ask(f"Consistency {SCORE_MIN}-{SCORE_MAX}, b=back, q=quit: ")
        if answer.lower() == "q":
            runner.request_exit()
        elif answer.lower() == "b":
            if not runner.retreat():
                ui.say("Already at the first item.")
        else:
            try:
                runner.advance(int(answer))
            except ValueError:
                ui.say(f"Enter a number between {SCORE_MIN} and {SCORE_MAX}.")
            except ValidationError as e:
                ui.say(str(e))


def report_outcomes(ui: TerminalUI, outcomes: List[DeliveryOutcome]) -> None:
    queued = sum(1 for o in outcomes if not o.delivered)
    ui.say("Thank you for your help.")
    if queued:
        ui.say(f"{queued} answer(s) could not be sent yet; they are saved and will be sent next time.")


async def run_survey(runner: SessionRunner, ui: TerminalUI) -> List[Judgment]:
    """Returns the judgments of the last batch (used as the export fallback)."""
    while True:
        name = await ui.ask("Your name: ")
        if not name:
            ui.say("Please enter your name.")
            continue
        if await ui.confirm(f"Start as '{name}'?"):
            break

    try:
        outcome = await runner.start(name)
    except TransientDeliveryError as e:
        ui.say(f"Could not load items: {e}")
        return []

    last_batch: List[Judgment] = []
    while True:
        if outcome == BatchOutcome.POOL_EXHAUSTED:
            ui.say("There are no more items for you. Thank you!")
            return last_batch

        outcomes = await answer_batch(runner, ui)
        last_batch = [o.judgment for o in outcomes]
        report_outcomes(ui, outcomes)

        if not await ui.confirm("Continue answering?"):
            runner.reset()
            return last_batch
        try:
            outcome = await runner.continue_answering()
        except TransientDeliveryError as e:
            ui.say(f"Could not load new items: {e}")
            runner.reset()
            return last_batch


def local_records(sync: JudgmentSync, rater_name: str) -> List[Judgment]:
    """Unsent judgments of one rater, for the offline export."""
    records = []
    for entry in sync.pending.entries():
        try:
            records.append(Judgment.model_validate(entry))
        except PydanticValidationError:
            continue
    records.extend(sync.buffer.snapshot())
    return [j for j in records if j.rater_name == rater_name]


async def startup(sync: JudgmentSync, client: SurveyClient) -> None:
    await sync.retry_persisted()
    try:
        stats = await client.fetch_item_stats()
        logger.info("Items in pool: %s (available: %s)", stats.get("totalItems"), stats.get("availableItems"))
    except TransientDeliveryError as e:
        logger.warning("Could not read pool stats: %s", e)


async def main_async(args: argparse.Namespace, ui: Optional[TerminalUI] = None) -> int:
    ui = ui or TerminalUI()
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http_client:
        client = SurveyClient(http_client, args.base_url)
        store = LocalStateStore(args.state_dir)
        sync = JudgmentSync(client, PendingQueue(store))
        await startup(sync, client)

        if args.command == "export-all":
            try:
                file_name, content = await export_all_results(client)
            except StorageUnavailable as e:
                ui.say(f"Could not read results from the server: {e}")
                return 1
            ui.say(f"Wrote {write_export(args.out, file_name, content)}")
            return 0

        if args.command == "export":
            if not args.rater:
                ui.say("--rater is required for export")
                return 2
            file_name, content = await export_rater_results(client, args.rater, local_records(sync, args.rater))
            ui.say(f"Wrote {write_export(args.out, file_name, content)}")
            return 0

        accountant = UsageAccountant(client)
        runner = SessionRunner(client=client, sync=sync, accountant=accountant, state_store=store)
        try:
            last_batch = await run_survey(runner, ui)
            if runner.rater_name and await ui.confirm("Download your results as CSV?"):
                file_name, content = await export_rater_results(client, runner.rater_name, last_batch)
                ui.say(f"Wrote {write_export(args.out, file_name, content)}")
        finally:
            # interrupted mid-batch: keep unsent answers for the next start
            sync.park()
            await accountant.drain()
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Strategy/sustainability consistency survey")
    parser.add_argument("command", nargs="?", default="survey", choices=["survey", "export", "export-all"])
    parser.add_argument("--base-url", default=SURVEY_BASE_URL)
    parser.add_argument("--state-dir", default=SURVEY_STATE_DIR)
    parser.add_argument("--rater", default=None, help="rater name (export)")
    parser.add_argument("--out", default=".", help="directory for CSV exports")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(main_async(args))
    except (KeyboardInterrupt, EOFError):
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
