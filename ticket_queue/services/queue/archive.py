"""
Order Archive with Concurrency Control

Excel archive for orders that the daily reset removes from the live
queue. One row per order, tagged with the business day it belonged to.

The archive is appended under its own file lock and rewritten with the
same temp-file-and-rename commit as the queue document, so a crash
mid-export leaves the previous archive readable.

Author: Khalil Bannouri
Version: 3.0.0
"""

import os
import json
import logging
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd
from filelock import FileLock, Timeout

from ticket_queue.models import QueueOrder

logger = logging.getLogger(__name__)


class OrderArchive:
    """Thread- and process-safe Excel archive of past business days."""

    COLUMNS = [
        "business_date",
        "order_id",
        "ticket",
        "status",
        "created_at",
        "customer_name",
        "customer_phone",
        "items",
        "total",
        "archived_at",
    ]

    def __init__(self, path: Path, lock_timeout: float = 10.0):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout

    def _load_df(self) -> pd.DataFrame:
        """Load the existing archive or an empty frame."""
        if self.path.exists():
            return pd.read_excel(self.path, engine="openpyxl", dtype={"order_id": str})
        return pd.DataFrame(columns=self.COLUMNS)

    def _write_df(self, df: pd.DataFrame) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".xlsx",
        )
        os.close(fd)
        try:
            df.to_excel(tmp_name, index=False, engine="openpyxl")
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @staticmethod
    def _row(order: QueueOrder, business_date: Optional[date], archived_at: str) -> dict[str, Any]:
        return {
            "business_date": business_date.isoformat() if business_date else None,
            "order_id": order.id,
            "ticket": order.ticket,
            "status": order.status.value,
            "created_at": order.created_at.isoformat() if order.created_at else None,
            "customer_name": order.customer_name,
            "customer_phone": order.customer_phone,
            "items": json.dumps(order.items, default=str),
            "total": order.total,
            "archived_at": archived_at,
        }

    def archive_orders(
        self,
        orders: Iterable[QueueOrder],
        business_date: Optional[date],
    ) -> dict[str, Any]:
        """
        Append orders of one business day to the archive.

        Returns:
            dict with success, message, archived count and archived_at
        """
        orders = list(orders)
        result = {
            "success": False,
            "message": "",
            "archived": 0,
            "archived_at": None,
        }

        if not orders:
            result["success"] = True
            result["message"] = "Nothing to archive"
            return result

        self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            lock = FileLock(str(self.lock_path), timeout=self.lock_timeout)

            with lock:
                logger.debug(f"Archive lock acquired for {business_date}")

                df = self._load_df()

                archived_at = datetime.now().isoformat()
                new_rows = pd.DataFrame([self._row(o, business_date, archived_at) for o in orders])
                df = new_rows if df.empty else pd.concat([df, new_rows], ignore_index=True)
                self._write_df(df)

                logger.info(f"Archived {len(orders)} orders from {business_date}")

                result["success"] = True
                result["message"] = f"{len(orders)} orders archived"
                result["archived"] = len(orders)
                result["archived_at"] = archived_at

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Archive lock timeout for {business_date}")

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error archiving orders from {business_date}")

        return result

    def get_archived_orders(self, business_date: Optional[date] = None) -> list[dict[str, Any]]:
        """Archived rows, optionally limited to one business day."""
        if not self.path.exists():
            return []

        try:
            df = self._load_df()
        except Exception as e:
            logger.error(f"Error reading archive: {e}")
            return []

        if business_date is not None:
            df = df[df["business_date"] == business_date.isoformat()]
        return df.astype(object).where(pd.notna(df), None).to_dict("records")
