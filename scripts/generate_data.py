"""
Demo data generator for Studio Signals.

Creates one owner's clients, attendance and payment rows with a deterministic
pseudo-random generator, shaped so every rule has something to find:

- "steady" clients attend regularly in both 28-day windows
- "fading" clients attended often before and rarely lately (attendance drop)
- "flaky" clients rack up no-shows in the last 28 days (no-show risk)
- some packages for the current month stay unpaid with lessons pending
"""

from __future__ import annotations

import random
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import date, time as dt_time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

import psycopg
import typer

from studio_signals.infrastructure.db_factory import build_dsn

app = typer.Typer(help="Generate a demo studio and load it into Postgres.")

FIRST_NAMES = ["Maria", "Eleni", "Nikos", "Anna", "Giorgos", "Sofia", "Dimitra", "Kostas"]
LAST_NAMES = ["Papadopoulou", "Georgiou", "Ioannou", "Nikolaou", "Vasileiou", "Karali"]
PROFILES = ["steady", "steady", "fading", "flaky"]
SESSION_HOURS = [8, 9, 10, 17, 18, 19, 20]
MAX_CLIENTS = len(FIRST_NAMES) * len(LAST_NAMES)


@dataclass(frozen=True)
class DemoClient:
    id: uuid.UUID
    full_name: str
    profile: str


@dataclass(frozen=True)
class DemoData:
    clients: List[DemoClient]
    attendance: List[Tuple]
    payments: List[Tuple]


def _build_dsn(dsn_override: Optional[str]) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _random_id(rng: random.Random) -> uuid.UUID:
    return uuid.UUID(int=rng.getrandbits(128), version=4)


def _session(rng: random.Random, client: DemoClient, day: date, status: str) -> Tuple:
    hour = rng.choice(SESSION_HOURS)
    return (
        _random_id(rng),
        client.id,
        day,
        dt_time(hour, 0),
        50,
        rng.choice(["reformer", "reformer", "cadillac"]),
        status,
    )


def _generate(clients: int, today: date, seed: int) -> DemoData:
    if not 1 <= clients <= MAX_CLIENTS:
        raise ValueError(f"clients must be between 1 and {MAX_CLIENTS}, got {clients}")
    rng = random.Random(seed)
    names = [f"{first} {last}" for first in FIRST_NAMES for last in LAST_NAMES]
    rng.shuffle(names)
    demo_clients = [
        DemoClient(id=_random_id(rng), full_name=name, profile=PROFILES[i % len(PROFILES)])
        for i, name in enumerate(names[:clients])
    ]

    attendance: List[Tuple] = []
    for client in demo_clients:
        for offset in range(0, 56):
            day = today - timedelta(days=offset)
            recent = offset <= 28
            if client.profile == "steady":
                rate = 0.3
            elif client.profile == "fading":
                rate = 0.05 if recent else 0.35
            else:
                rate = 0.25
            if rng.random() >= rate:
                continue
            status = "attended"
            if client.profile == "flaky" and recent and rng.random() < 0.5:
                status = "no_show"
            elif rng.random() < 0.05:
                status = "canceled"
            attendance.append(_session(rng, client, day, status))

    month_start = today.replace(day=1)
    payments: List[Tuple] = []
    for client in demo_clients:
        lessons = rng.choice([8, 10, 12])
        payments.append(
            (
                client.id,
                month_start,
                lessons,
                Decimal(lessons * 15),
                rng.random() < 0.6,
            )
        )
    return DemoData(clients=demo_clients, attendance=attendance, payments=payments)


def _load(dsn: str, owner_id: uuid.UUID, data: DemoData) -> None:
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            cur.executemany(
                "INSERT INTO clients (id, owner_id, full_name) VALUES (%s, %s, %s)",
                [(c.id, owner_id, c.full_name) for c in data.clients],
            )
            cur.executemany(
                """
                INSERT INTO attendance (
                    id, owner_id, client_id, session_date, time_of_day,
                    duration_minutes, bed_type, status
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                [(row[0], owner_id, *row[1:]) for row in data.attendance],
            )
            cur.executemany(
                """
                INSERT INTO payments (owner_id, client_id, month_start, lesson_count, price, paid)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                [(owner_id, *row) for row in data.payments],
            )
        conn.commit()


@app.command()
def main(
    clients: int = typer.Option(
        12, "--clients", "-c", min=1, max=MAX_CLIENTS, help="Number of clients."
    ),
    owner: Optional[uuid.UUID] = typer.Option(
        None, "--owner", "-o", help="Owner id (default: a new random one)."
    ),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Generate a demo studio and load it into Postgres.
    """
    start = time.perf_counter()
    owner_id = owner or uuid.uuid4()
    data = _generate(clients=clients, today=date.today(), seed=seed)
    typer.echo(
        f"Generated {len(data.clients)} clients, {len(data.attendance)} sessions, "
        f"{len(data.payments)} payments for owner {owner_id}."
    )
    _load(_build_dsn(dsn), owner_id, data)
    typer.echo(f"Loaded in {time.perf_counter() - start:.2f}s. Try: studio-signals refresh -o {owner_id}")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
