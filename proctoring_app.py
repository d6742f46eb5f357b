#!/usr/bin/env python3
"""
Exam Proctoring Client - Console front end.

Runs a timed exam in the terminal while the webcam is proctored in the
background. Commands: 1..n select a choice, n/p move between questions,
t shows the timer and proctoring status, d dismisses the current alert,
a [high|medium|low] lists the alert history, s submits, q leaves the exam.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

import cv2
import numpy as np

from capture.camera import OpenCVCamera
from exam.models import ExamResult
from exam.proctored_exam import ProctoredExam
from exam.provider import ApiExamProvider, ExamProvider, MockExamProvider
from exam.scoring import (
    calculate_percentage,
    format_time,
    get_exam_feedback,
    get_letter_grade,
    is_time_critical,
    is_time_running_low,
)
from exam.session import ExamSessionController
from proctoring_engine.config import ConfigurationService, ProctoringConfiguration
from proctoring_engine.models import AlertContext, SuspiciousAlert
from proctoring_engine.session import ProctoringSession, build_default_handlers
from shared_utils.common import setup_logging


logger = logging.getLogger(__name__)

HELP_TEXT = (
    "Commands: 1..n select answer | n next | p previous | t time/status | "
    "d dismiss alert | a [high|medium|low] alerts | s submit | q quit | h help"
)
SEVERITY_FILTERS = ('all', 'high', 'medium', 'low')
PREVIEW_WINDOW = "Proctoring Preview"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Take a proctored exam in the terminal")
    parser.add_argument("--exam-id", type=int, default=1, help="Exam to load")
    parser.add_argument("--student-id", help="Student id attached to alerts")
    parser.add_argument("--student-name", help="Student name attached to alerts")
    parser.add_argument("--config", default="config/proctoring_config.json", help="Configuration file")
    parser.add_argument("--ws-url", help="Verification service WebSocket URL")
    parser.add_argument("--api-base-url", help="REST API base URL")
    parser.add_argument("--reference-image", help="Reference photo path or URL")
    parser.add_argument("--use-api", action="store_true", help="Load the exam from the REST API instead of mock data")
    parser.add_argument("--no-camera", action="store_true", help="Run the exam without proctoring")
    parser.add_argument("--no-sound", action="store_true", help="Disable alert tones")
    parser.add_argument("--show-preview", action="store_true", help="Show the live camera preview in a window")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ProctoringConfiguration:
    """Load the configuration and apply command line overrides."""
    config = ConfigurationService(args.config).load_configuration()

    if args.ws_url:
        config.ws_url = args.ws_url
    if args.api_base_url:
        config.api_base_url = args.api_base_url
    if args.reference_image:
        config.reference_image = args.reference_image
    if args.use_api:
        config.use_mock_data = False
    if args.no_sound:
        config.sound_enabled = False
    if args.log_level:
        config.log_level = args.log_level

    return config


def build_provider(config: ProctoringConfiguration) -> ExamProvider:
    if config.use_mock_data:
        return MockExamProvider(config.default_time_limit_minutes, config.default_passing_score)
    return ApiExamProvider(
        config.api_base_url,
        timeout=config.request_timeout_seconds,
        default_time_limit=config.default_time_limit_minutes,
        default_passing_score=config.default_passing_score,
    )


class PreviewWindow:
    """Live camera preview in an OpenCV window, framed by the status ring."""

    def __init__(self, title: str = PREVIEW_WINDOW):
        self.title = title
        self.enabled = True
        self.opened = False

    def show(self, preview: np.ndarray) -> None:
        if not self.enabled:
            return
        try:
            cv2.imshow(self.title, preview)
            cv2.waitKey(1)
        except cv2.error as e:
            # headless OpenCV builds have no GUI backend
            self.enabled = False
            logger.warning(f"Preview window unavailable: {e}")
            return
        self.opened = True

    def close(self) -> None:
        if not self.opened:
            return
        self.opened = False
        try:
            cv2.destroyWindow(self.title)
            cv2.waitKey(1)
        except cv2.error as e:
            logger.debug(f"Error closing preview window: {e}")


class ConsoleExamUI:
    """Terminal rendering and input handling for a proctored exam."""

    def __init__(self, proctored: ProctoredExam):
        self.proctored = proctored
        self.exam = proctored.exam
        self._submitted = asyncio.Event()
        self._pending_input: Optional[asyncio.Future] = None

        self.exam.submitted_callbacks.append(self.on_submitted)
        self.exam.tick_callbacks.append(self.on_tick)

        proctoring = proctored.proctoring
        if proctoring is not None:
            proctoring.aggregator.add_notification_callback(self.on_alert)
            proctoring.transport.connection_callbacks.append(self.on_connection_change)
            proctoring.capture.on_error = self.on_camera_error

    def on_alert(self, alert: SuspiciousAlert) -> None:
        print(f"\n[ALERT {alert.severity.value.upper()}] {alert.message}")

    def on_connection_change(self, connected: bool) -> None:
        state = "connected" if connected else "disconnected"
        print(f"\n[PROCTORING] Verification service {state}")

    def on_camera_error(self, message: str) -> None:
        print(f"\n[PROCTORING] Camera unavailable: {message}. The exam continues without monitoring.")

    def on_tick(self, remaining: int) -> None:
        if is_time_critical(remaining):
            if remaining % 10 == 0 and remaining > 0:
                print(f"\n[TIMER] {format_time(remaining)} left!")
        elif is_time_running_low(remaining) and remaining % 60 == 0:
            print(f"\n[TIMER] {format_time(remaining)} left")

    def on_submitted(self, result: ExamResult) -> None:
        if result.reason == "timeout":
            print("\nTime is up! Your exam has been submitted.")
        self._submitted.set()

    def render_question(self) -> None:
        question = self.exam.current_question
        if question is None:
            return
        progress = self.exam.progress()
        print()
        print(f"Question {progress['current']} of {progress['total']} "
              f"({progress['answered']} answered, {format_time(self.exam.time_remaining)} left)")
        print(question.context)
        selected = self.exam.answers.get(question.id)
        for index, choice in enumerate(question.choices):
            marker = "*" if selected == index else " "
            print(f"  {marker} {index + 1}. {choice}")

    def render_status(self) -> None:
        print(f"Time left: {format_time(self.exam.time_remaining)}")
        proctoring = self.proctored.proctoring
        if proctoring is None:
            print("Proctoring: off")
            return
        status = proctoring.status()
        print(f"Proctoring: camera {status['permission_state']}, "
              f"{'connected' if status['connected'] else 'disconnected'}, "
              f"indicator {status['indicator']['color']}, "
              f"{status['frames_sent']} frames, {status['alert_count']} alerts")

    def render_alerts(self, severity: str = 'all') -> None:
        proctoring = self.proctored.proctoring
        if proctoring is None:
            print("Proctoring: off")
            return
        if severity not in SEVERITY_FILTERS:
            print(f"Unknown severity '{severity}', use one of: {', '.join(SEVERITY_FILTERS)}")
            return

        stats = proctoring.aggregator.get_alert_statistics()
        by_severity = stats['alerts_by_severity']
        print(f"Alerts: {stats['total_alerts']} total "
              f"({by_severity['high']} high, {by_severity['medium']} medium, {by_severity['low']} low)")

        alerts = proctoring.aggregator.get_alert_history(severity=severity)
        if not alerts:
            print("  No alerts" if severity == 'all' else f"  No {severity} severity alerts")
            return
        for alert in alerts:
            at = datetime.fromtimestamp(alert.timestamp / 1000).strftime('%H:%M:%S')
            print(f"  {at} [{alert.severity.value.upper()}] {alert.message}")

    def dismiss_alert(self) -> None:
        proctoring = self.proctored.proctoring
        if proctoring is not None and proctoring.aggregator.dismiss_current():
            print("Alert dismissed")
        else:
            print("No active alert")

    def render_result(self) -> None:
        result = self.exam.result
        if result is None:
            return
        percentage = calculate_percentage(result.score, result.total_questions)
        print()
        print("=" * 40)
        print(f"Score: {result.score}/{result.total_questions} ({percentage}%) "
              f"Grade {get_letter_grade(percentage)}")
        print("PASSED" if result.passed else "NOT PASSED")
        print(get_exam_feedback(percentage, result.passed))
        for question, answer in zip(self.exam.exam.questions, result.answers):
            mark = "correct" if answer.correct else "incorrect"
            print(f"  Q{question.id}: {mark} (answer: {question.choices[question.answer]})")
        print("=" * 40)

    def handle_command(self, command: str) -> bool:
        """
        Apply one command.

        Returns:
            False when the user asked to leave the exam
        """
        command, _, argument = command.lower().partition(' ')
        if command.isdigit():
            if self.exam.select_answer(int(command) - 1):
                self.render_question()
            else:
                print("Invalid choice")
        elif command == 'n':
            if self.exam.next():
                self.render_question()
        elif command == 'p':
            if self.exam.previous():
                self.render_question()
        elif command == 't':
            self.render_status()
        elif command == 'd':
            self.dismiss_alert()
        elif command == 'a':
            self.render_alerts(argument.strip() or 'all')
        elif command == 's':
            self.exam.submit()
        elif command == 'q':
            return False
        elif command:
            print(HELP_TEXT)
        return True

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        submitted = asyncio.ensure_future(self._submitted.wait())

        print(HELP_TEXT)
        self.render_question()
        try:
            while self.exam.is_active:
                if self._pending_input is None:
                    self._pending_input = loop.run_in_executor(None, sys.stdin.readline)
                done, _ = await asyncio.wait(
                    {self._pending_input, submitted}, return_when=asyncio.FIRST_COMPLETED
                )
                if self._pending_input not in done:
                    continue

                line = self._pending_input.result()
                self._pending_input = None
                if not line:
                    # stdin closed
                    self.exam.submit()
                    break
                if not self.handle_command(line.strip()):
                    print("Leaving the exam without submitting.")
                    break
        finally:
            submitted.cancel()

        self.render_result()
        if self._pending_input is not None:
            print("Press Enter to exit.")


async def run(args: argparse.Namespace) -> int:
    config = build_config(args)
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    setup_logging('', level=level, log_file=config.log_file)

    context = AlertContext(
        student_id=args.student_id,
        student_name=args.student_name,
        exam_id=str(args.exam_id),
    )
    exam = ExamSessionController(build_provider(config))

    proctoring = None
    if not args.no_camera:
        device = OpenCVCamera(config.camera_index, config.frame_width, config.frame_height)
        proctoring = ProctoringSession(
            config,
            device,
            context=context,
            handlers=build_default_handlers(config, context),
        )

    window = None
    if proctoring is not None and args.show_preview:
        window = PreviewWindow()
        proctoring.add_preview_sink(window.show)

    proctored = ProctoredExam(exam, proctoring)
    ui = ConsoleExamUI(proctored)
    try:
        if not await proctored.start(args.exam_id):
            print(f"Error loading exam: {exam.error}")
            return 1
        await ui.run()
    finally:
        await proctored.close()
        if window is not None:
            window.close()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
