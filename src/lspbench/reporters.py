"""Output strategies for completed measurements."""

from __future__ import annotations

import csv
import io
from typing import Callable, Protocol

import typer

from lspbench.exceptions import ConfigError
from lspbench.simulator import Measurement


class Reporter(Protocol):
    def __call__(self, measurement: Measurement) -> None: ...


def _location(measurement: Measurement) -> str:
    return f"{measurement.file}:{measurement.line}:{measurement.column}"


class HumanReporter:
    def __init__(self, echo: Callable[[str], None] = typer.echo) -> None:
        self._echo = echo

    def __call__(self, measurement: Measurement) -> None:
        line = (
            f"{_location(measurement)} {round(measurement.elapsed_ms)} ms "
            f"({measurement.result_count} results)"
        )
        if measurement.error is not None:
            line += f" error: {measurement.error}"
        self._echo(line)


class CsvReporter:
    def __init__(self, echo: Callable[[str], None] = typer.echo) -> None:
        self._echo = echo

    def __call__(self, measurement: Measurement) -> None:
        row: list[object] = [
            _location(measurement),
            round(measurement.elapsed_ms),
            measurement.result_count,
        ]
        if measurement.error is not None:
            row.append(measurement.error)
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator="").writerow(row)
        self._echo(buffer.getvalue())


class CollectingReporter:
    """Keeps measurements in memory instead of printing them."""

    def __init__(self) -> None:
        self.measurements: list[Measurement] = []

    def __call__(self, measurement: Measurement) -> None:
        self.measurements.append(measurement)


REPORTERS: dict[str, Callable[[Callable[[str], None]], Reporter]] = {
    "human": HumanReporter,
    "csv": CsvReporter,
}


def make_reporter(name: str, echo: Callable[[str], None] = typer.echo) -> Reporter:
    try:
        factory = REPORTERS[name]
    except KeyError:
        raise ConfigError(f"Unrecognized format: {name}") from None
    return factory(echo)
