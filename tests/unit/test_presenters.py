"""
Unit tests for dashboard_service.presenters.
"""

import pytest
from unittest.mock import Mock

from core.errors import ConnectError, ParseError
from core.state import Dataset, ProportionalEntry, SeriesModel
from dashboard_service.presenters import (
    AlertLevel,
    FailureNotifier,
    LoggingRenderer,
    SeriesRenderer,
)


class TestFailureNotifier:

    def test_first_failure_of_session_is_blocking(self):
        notifier = FailureNotifier()

        notice = notifier.record_failure(ConnectError("refused"))

        assert notice.level == AlertLevel.BLOCKING
        assert notice.consecutive_failures == 1

    def test_transient_failures_are_passive_until_threshold(self):
        notifier = FailureNotifier(threshold=3)

        levels = [notifier.record_failure(ParseError("bad")).level for _ in range(4)]

        assert levels == [AlertLevel.BLOCKING, AlertLevel.PASSIVE, AlertLevel.BLOCKING, AlertLevel.BLOCKING]

    def test_success_resets_streak(self):
        notifier = FailureNotifier(threshold=3)
        notifier.record_failure(ConnectError("a"))
        notifier.record_failure(ConnectError("b"))

        notifier.record_success()
        notice = notifier.record_failure(ConnectError("c"))

        assert notifier.consecutive_failures == 1
        assert notice.level == AlertLevel.PASSIVE
        assert notifier.session_failures == 3

    def test_callback_receives_notice(self):
        callback = Mock()
        notifier = FailureNotifier(on_notice=callback)

        notice = notifier.record_failure(ConnectError("refused"))

        callback.assert_called_once_with(notice)

    def test_callback_errors_are_contained(self, caplog):
        notifier = FailureNotifier(on_notice=Mock(side_effect=RuntimeError("ui gone")))

        notifier.record_failure(ConnectError("refused"))

        assert "Failure notice callback raised" in caplog.text

    def test_to_dict(self):
        notifier = FailureNotifier()
        notifier.record_failure(ConnectError("refused"))

        data = notifier.to_dict()

        assert data["consecutive_failures"] == 1
        assert data["last_notice"]["level"] == "blocking"
        assert data["last_notice"]["message"] == "refused"


class TestLoggingRenderer:

    def test_keeps_last_model(self, caplog):
        renderer = LoggingRenderer()
        model = SeriesModel(
            labels=("Jan",),
            datasets=(Dataset(values=(1.0,), column="Sales"),),
            proportional=(ProportionalEntry(label="Jan", value=1.0),),
        )

        renderer.render(model)

        assert renderer.last is model
        assert renderer.render_count == 1
        assert "Rendered series: 1 labels" in caplog.text

    def test_satisfies_protocol(self):
        assert isinstance(LoggingRenderer(), SeriesRenderer)
