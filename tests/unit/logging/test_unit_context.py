# tests/unit/logging/test_unit_context.py — v2
"""Tests for logging/context.py — contextual logging variables."""

from __future__ import annotations

from mirbatch.logging.context import (
    clear_context,
    get_context,
    set_batch_context,
    set_run_context,
    set_stage,
)


class TestLogContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_initial_state(self):
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.batch_id is None
        assert ctx.stage is None

    def test_set_run_context(self):
        set_run_context("run1")
        assert get_context().run_id == "run1"

    def test_set_batch_context(self):
        set_batch_context(4, "upload")
        ctx = get_context()
        assert ctx.batch_id == 4
        assert ctx.stage == "upload"

    def test_set_stage_keeps_batch(self):
        set_batch_context(2, "upload")
        set_stage("export")
        ctx = get_context()
        assert ctx.batch_id == 2
        assert ctx.stage == "export"

    def test_as_dict_filters_none(self):
        set_run_context("run1")
        d = get_context().as_dict()
        assert d == {"run_id": "run1"}

    def test_clear(self):
        set_run_context("run1")
        set_batch_context(1, "export")
        clear_context()
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.batch_id is None
