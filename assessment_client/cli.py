"""
Assessment Client - run one assessment session from the command line.

Flow:
1. Fetch the quality model and build the goal tree
2. Select the goals named with --goal (a goal selects its whole subtree)
3. Send the start request with the application metadata
4. Print progress lines as they arrive and results as they are reconciled
5. Ctrl+C stops the session; with --exit-on-complete the run ends once
   instrumentation is complete

Usage:
    python -m assessment_client --list-goals
    python -m assessment_client --name shop --type web --technology angular \\
        --path /srv/shop --url http://localhost:4200 --goal Performance
    python -m assessment_client ... --goal Performance/LoadTime --exit-on-complete
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import httpx
from dotenv import load_dotenv

from assessment_client.api import AssessmentApiClient
from assessment_client.assessment.models import SessionPhase, SessionState
from assessment_client.assessment.orchestrator import SessionOrchestrator
from assessment_client.assessment.summaries import (
    global_score_series,
    metric_contributions,
    metric_label,
)
from assessment_client.config import ApiConfig, AssessmentClientConfig
from assessment_client.goals import GoalTree
from assessment_client.utils.exceptions import AssessmentClientError, ConfigurationError, InvalidRequestError
from assessment_client.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class AssessmentRunner:
    """Drives one session for the command line and reports it through logging."""

    def __init__(
        self,
        args: argparse.Namespace,
        config: AssessmentClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize runner with CLI arguments.

        Args:
            args: Parsed command-line arguments
            config: Client configuration (CLI overrides already applied)
            transport: Custom httpx transport (tests)
        """
        self.args = args
        self.config = config
        self.transport = transport
        self.orchestrator: Optional[SessionOrchestrator] = None

        self._finished = asyncio.Event()
        self._progress_seen = 0
        self._last_phase = SessionPhase.IDLE
        self._result_count = 0

    async def run(self) -> int:
        """
        Execute the assessment flow.

        Returns:
            Exit code (0 success, 1 failure, 2 invalid input)
        """
        async with AssessmentApiClient(self.config.api, transport=self.transport) as api:
            try:
                tree = await api.fetch_goal_tree()
            except httpx.HTTPError as e:
                logger.error(f"✗ Could not fetch the quality model: {e}")
                return EXIT_FAILURE
            except AssessmentClientError as e:
                logger.error(f"✗ {e.message}")
                return EXIT_FAILURE

            if self.args.list_goals:
                print_goal_tree(tree)
                return EXIT_OK

            try:
                select_goals(tree, self.args.goal or [])
            except KeyError as e:
                logger.error(f"✗ Unknown goal: {e.args[0]}")
                return EXIT_USAGE

            async with SessionOrchestrator(api, self.config, observer=self._on_update) as orchestrator:
                self.orchestrator = orchestrator
                signals = self._install_signal_handler()
                try:
                    return await self._follow(orchestrator, tree)
                finally:
                    if signals:
                        asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    async def _follow(self, orchestrator: SessionOrchestrator, tree: GoalTree) -> int:
        """Start the session and follow it until the streams end, completion or Ctrl+C."""
        try:
            await orchestrator.start(self._metadata(), tree)
        except InvalidRequestError as e:
            logger.error(f"✗ {e.message}")
            return EXIT_USAGE
        except AssessmentClientError as e:
            logger.error(f"✗ {e.message}")
            return EXIT_FAILURE

        streams_done = asyncio.create_task(orchestrator.wait_closed())
        finished = asyncio.create_task(self._finished.wait())
        await asyncio.wait({streams_done, finished}, return_when=asyncio.FIRST_COMPLETED)
        finished.cancel()
        streams_done.cancel()

        state = orchestrator.snapshot()
        self._display_results(state)

        if state.phase == SessionPhase.STOPPED:
            return EXIT_FAILURE
        return EXIT_OK if state.phase == SessionPhase.COMPLETED or state.results else EXIT_FAILURE

    def _metadata(self) -> dict:
        return {
            "name": self.args.name,
            "type": self.args.type,
            "technology": self.args.technology,
            "path": self.args.path,
            "url": self.args.url,
        }

    def _install_signal_handler(self) -> bool:
        """Stop the session on Ctrl+C instead of killing the event loop."""
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self._interrupt)
        except (NotImplementedError, RuntimeError):
            # Windows event loops or a loop outside the main thread;
            # KeyboardInterrupt still unwinds the run
            logger.debug("Signal handlers not supported on this event loop")
            return False
        return True

    def _interrupt(self) -> None:
        logger.info("Received interrupt signal, stopping assessment...")
        if self.orchestrator is not None:
            self.orchestrator.stop()
        self._finished.set()

    def _on_update(self, state: SessionState) -> None:
        progress = state.progress
        if progress.appended < self._progress_seen:
            # Buffer cleared by a new session
            self._progress_seen = 0
        new_lines = min(progress.appended - self._progress_seen, len(progress))
        if new_lines:
            for line in progress.snapshot()[-new_lines:]:
                logger.info(f"[progress] {line}")
        self._progress_seen = progress.appended

        if len(state.results) != self._result_count:
            self._result_count = len(state.results)
            logger.info(f"[results] {self._result_count} goal(s) assessed")

        if state.phase != self._last_phase:
            if state.phase == SessionPhase.COMPLETED:
                logger.info(f"✓ Instrumentation complete. Open {state.application_url} to interact with it")
                if self.args.exit_on_complete:
                    self._finished.set()
            elif state.phase == SessionPhase.FAILED:
                logger.error(f"✗ Assessment failed: {state.last_error}")
            self._last_phase = state.phase

    def _display_results(self, state: SessionState) -> None:
        """
        Display assessment results in console.

        Args:
            state: Final session snapshot
        """
        logger.info("ASSESSMENT RESULTS")
        logger.info("=" * 60)
        if not state.results:
            logger.info("No results received")
        for name, goal in state.results.items():
            score = goal.latest_score()
            logger.info(f"{name}: {'n/a' if score is None else f'{score * 100:.1f}%'}")
            logger.info(f"  Assessments: {len(global_score_series(goal))}")
            labels = {m.acronym or m.name: metric_label(m) for m in goal.metrics}
            for key, contribution in metric_contributions(goal):
                logger.info(f"  {labels.get(key, key)}: {contribution:.1f}%")
        if state.last_error:
            logger.warning(f"Last error: {state.last_error}")
        logger.info("=" * 60)


def select_goals(tree: GoalTree, paths: List[str]) -> List[str]:
    """
    Select the goals at the given name paths (and their subtrees).

    Raises:
        KeyError: If a path names no goal
    """
    for path in paths:
        node = tree.find(path)
        if not node.selected:
            tree.toggle_selection(node)
    return tree.selected_names()


def print_goal_tree(tree: GoalTree) -> None:
    """Print the goal tree, one indented line per goal."""
    depth = {}
    for node in tree.walk():
        level = 0 if node.parent is None else depth[node.parent] + 1
        depth[node.id] = level
        weight = f" (weight {node.weight:g})" if node.weight else ""
        print(f"{'  ' * level}- {node.name}{weight}")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="assessment-client",
        description="Start an assessment session and follow its progress and results",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Assessment server API root (overrides ASSESSMENT_CLIENT_BASE_URL)"
    )

    metadata = parser.add_argument_group("application metadata")
    metadata.add_argument("--name", type=str, help="Application name")
    metadata.add_argument("--type", type=str, help="Application type")
    metadata.add_argument("--technology", type=str, help="Application technology")
    metadata.add_argument("--path", type=str, help="Application source path")
    metadata.add_argument("--url", type=str, help="URL of the running application")

    parser.add_argument(
        "--goal",
        action="append",
        metavar="PATH",
        help="Goal to assess as a name path (e.g. Performance/LoadTime); repeatable"
    )

    parser.add_argument(
        "--list-goals",
        action="store_true",
        help="Print the quality model's goals and exit"
    )

    parser.add_argument(
        "--exit-on-complete",
        action="store_true",
        help="Exit once instrumentation is complete instead of following results"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging verbosity level (default: from environment, else INFO)"
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines"
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AssessmentClientConfig:
    """
    Load configuration from the environment and apply CLI overrides.

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    config = AssessmentClientConfig.from_env()
    try:
        if args.base_url:
            config.api = ApiConfig(**{**config.api.model_dump(), "base_url": args.base_url})
        if args.log_level:
            config.observability.log_level = args.log_level
        if args.json_logs:
            config.observability.json_logs = True
    except ValueError as e:
        raise ConfigurationError(f"Invalid command-line option: {e}", config_key="cli") from e
    config.validate_config()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure, 2 for invalid input)
    """
    load_dotenv()
    args = parse_arguments(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_USAGE

    observability = config.observability
    setup_logging(observability.log_level, observability.json_logs, observability.log_file)

    logger.info("=" * 60)
    logger.info("ASSESSMENT CLIENT")
    logger.info(f"Server: {config.api.base_url}")
    logger.info("=" * 60)

    try:
        return asyncio.run(AssessmentRunner(args, config).run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_FAILURE


__all__ = ["AssessmentRunner", "main", "parse_arguments", "build_config", "select_goals", "print_goal_tree"]
