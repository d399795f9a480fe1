"""
CLI: export JSON del CMS -> store relacional.

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) con cada export nuevo.
  - Reintenta errores de store con la misma politica que el endpoint de ingesta.

Variables de entorno:
  - DATABASE_URL (o DATABASE_HOST/PORT/USER/PASSWORD/NAME)
  - RETRY_MAX_ATTEMPTS, RETRY_MIN_BACKOFF, RETRY_MAX_BACKOFF (opcionales)

Ejecución:
  python scripts/ingest_export.py export.json
  python scripts/ingest_export.py export.json --init-db
  python scripts/ingest_export.py export.json --report report.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raíz `content_sync/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# Cargar variables desde .env si existe (api/.env o raiz del repo).
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from content_sync.core.config import Settings
from content_sync.core.container import build_container
from content_sync.infrastructure.database.session import close_db, init_db
from content_sync.shared.exceptions.base import AppException
from content_sync.shared.exceptions.domain import IngestionAbortedError


def _load_export(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SystemExit(f"No se pudo leer el export '{path}': {e}")
    if not isinstance(data, dict):
        raise SystemExit(f"El export '{path}' debe ser un objeto JSON con posts/categories/tags")
    return data


async def _run(export_path: Path, *, init_schema: bool, report_path: Path | None) -> int:
    container = build_container(Settings())
    try:
        if init_schema:
            await init_db(container.engine)
            logger.info("Esquema verificado/creado")

        raw = _load_export(export_path)

        async def ingest():
            return await container.ingestion.ingest(raw)

        try:
            report = await container.retry_policy.run(ingest, description="ingesta CLI")
            exit_code = 0
        except IngestionAbortedError as e:
            logger.error(f"Ingesta abortada: {e.message}")
            report = e.report
            exit_code = 2
        except AppException as e:
            logger.error(f"Ingesta fallida ({e.error_code}): {e.message}")
            return 1

        summary = report["summary"]
        for kind, counts in summary.items():
            logger.info(f"  {kind}: {counts}")
        if report["errors"]:
            logger.warning(f"{len(report['errors'])} errores por registro (ver reporte)")

        if report_path is not None:
            report_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
            logger.info(f"Reporte escrito en {report_path}")
        return exit_code
    finally:
        await close_db(container.engine)


def main() -> int:
    parser = argparse.ArgumentParser(description="Ingresa un export JSON del CMS.")
    parser.add_argument("export", type=Path, help="Archivo JSON del export.")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Crea las tablas si no existen antes de ingresar.",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Escribe el reporte completo (summary + errors) en este archivo.",
    )
    args = parser.parse_args()

    return asyncio.run(_run(args.export, init_schema=args.init_db, report_path=args.report))


if __name__ == "__main__":
    raise SystemExit(main())
