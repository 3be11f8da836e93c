# scheduler.py

import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from dotenv import load_dotenv

from services.date_range import preset_range, day_range, format_date_range

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s : %(message)s"
)
logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# JOBS
# ─────────────────────────────────────────

def _snapshot_day(day_scope, bundles: list, kpis: list, registry) -> int:
    """
    Dashboard équipe puis un par rep sur une journée, upsert dans metrics.
    Une erreur sur un rep est loggée, les autres continuent.
    """
    from services.dashboard import build_dashboard, score_dashboard_kpis
    from services.database import save_dashboard_snapshot

    day = day_scope.start.date().isoformat()
    as_of = day_scope.end

    team = build_dashboard(bundles, day_scope, None, as_of)
    save_dashboard_snapshot(day, team, score_dashboard_kpis(team, kpis, registry))
    written = 1

    for rep in team.reps:
        try:
            dashboard = build_dashboard(bundles, day_scope, rep.user_id, as_of)
            results = score_dashboard_kpis(dashboard, kpis, registry)
            save_dashboard_snapshot(day, dashboard, results)
            written += 1
        except Exception as e:
            logger.error(f"[snapshot] {day} rep {rep.user_id} : {e}")

    logger.info(
        f"[snapshot] {format_date_range(day_scope)} : {written} snapshots "
        f"({team.contacts_analyzed} contacts)"
    )
    return written


def _load_inputs() -> tuple:
    from kpi import DEFAULT_KPIS, get_default_registry
    from services.database import load_contact_bundles, load_kpi_formulas, load_custom_fields

    bundles = load_contact_bundles()
    kpis = load_kpi_formulas() or list(DEFAULT_KPIS)
    registry = get_default_registry(load_custom_fields())
    return bundles, kpis, registry


def run_daily_metrics_snapshot(now: Optional[datetime] = None) -> int:
    """
    1h00 quotidien.
    Calcule le dashboard de la veille pour l'équipe puis pour chaque rep,
    évalue les KPIs activés et upsert une ligne par scope dans metrics.

    Retourne le nombre de snapshots écrits.
    """
    now = now or datetime.now(timezone.utc)
    bundles, kpis, registry = _load_inputs()
    return _snapshot_day(preset_range("yesterday", now), bundles, kpis, registry)


def run_metrics_backfill(days: int = 30, now: Optional[datetime] = None) -> int:
    """
    Recalcule les snapshots des N derniers jours (veille incluse),
    du plus ancien au plus récent. Données chargées une seule fois.
    L'upsert sur (date, user_id) rend l'opération rejouable.

    Une journée en échec est loggée et sautée.
    Retourne le nombre total de snapshots écrits.
    """
    if days < 1:
        return 0

    now = now or datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    bundles, kpis, registry = _load_inputs()

    written = 0
    failed = 0
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset)
        try:
            written += _snapshot_day(day_range(day), bundles, kpis, registry)
        except Exception as e:
            failed += 1
            logger.error(f"[backfill] {day.isoformat()} : {e}")

    logger.info(f"[backfill] {days} jours : {written} snapshots, {failed} jours en échec")
    return written


def run_snapshot_job() -> None:
    try:
        run_daily_metrics_snapshot()
    except Exception as e:
        logger.error(f"[snapshot] Échec du job : {e}")


# ─────────────────────────────────────────
# LISTENERS
# ─────────────────────────────────────────

def _on_job_executed(event) -> None:
    if event.exception:
        logger.error(f"[scheduler] Job {event.job_id} : exception levée")


# ─────────────────────────────────────────
# BUILD SCHEDULER
# ─────────────────────────────────────────

def build_scheduler() -> BlockingScheduler:
    timezone_name = os.environ.get("SCHEDULER_TIMEZONE", "UTC")
    scheduler = BlockingScheduler(timezone=timezone_name)
    scheduler.add_listener(
        _on_job_executed,
        EVENT_JOB_ERROR | EVENT_JOB_EXECUTED
    )

    # 1h00 : snapshot des métriques de la veille
    scheduler.add_job(
        run_snapshot_job,
        trigger=CronTrigger(hour=1, minute=0),
        id="daily_metrics_snapshot",
        name="Métriques : snapshot quotidien",
        max_instances=1,
        coalesce=True
    )

    return scheduler


# ─────────────────────────────────────────
# POINT D'ENTRÉE
# ─────────────────────────────────────────

def main() -> None:
    logger.info("=" * 50)
    logger.info("Journey Scheduler : démarrage")
    logger.info("=" * 50)

    scheduler = build_scheduler()

    logger.info("Jobs configurés :")
    for job in scheduler.get_jobs():
        logger.info(f"  → {job.name}")

    logger.info("En attente...")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler arrêté proprement.")


if __name__ == "__main__":
    # python src/scheduler.py backfill [jours]
    if len(sys.argv) > 1 and sys.argv[1] == "backfill":
        run_metrics_backfill(int(sys.argv[2]) if len(sys.argv) > 2 else 30)
    else:
        main()
