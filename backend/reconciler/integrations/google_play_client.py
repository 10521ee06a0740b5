from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from reconciler.core.errors import AuthenticationFailure
from reconciler.core.platforms import GOOGLE_PLAY

logger = logging.getLogger(__name__)

REPORT_SUFFIXES = (".csv", ".zip")
REPORT_FOLDERS = ("earnings/", "sales/")


@dataclass
class ReportObject:
    name: str
    size: int = 0


def package_variants(package_name: str) -> tuple[str, ...]:
    name = package_name.lower()
    return (name, name.replace(".", "_"), name.replace(".", ""))


def is_relevant_report(name: str, package_name: str) -> bool:
    """Keep report files for this package plus the account-wide folders."""
    lowered = name.lower()
    if not lowered.endswith(REPORT_SUFFIXES):
        return False
    if any(folder in lowered for folder in REPORT_FOLDERS):
        return True
    return any(variant in lowered for variant in package_variants(package_name))


class GooglePlayClient:
    """Lists and downloads exported reports from the Play Console bucket."""

    def __init__(
        self,
        service_account_json: str | dict[str, Any],
        bucket_name: str,
        package_name: str,
        *,
        prefix: str | None = None,
    ):
        if isinstance(service_account_json, str):
            try:
                service_account_json = json.loads(service_account_json)
            except ValueError as exc:
                raise AuthenticationFailure(GOOGLE_PLAY, "service account JSON is not valid JSON") from exc
        self.service_account = service_account_json
        self.bucket_name = bucket_name
        self.package_name = package_name
        self.prefix = prefix or ""
        self._bucket = None

    def _get_bucket(self):
        if self._bucket is None:
            from google.cloud import storage

            client = storage.Client.from_service_account_info(self.service_account)
            self._bucket = client.bucket(self.bucket_name)
        return self._bucket

    def list_reports(self) -> list[ReportObject]:
        bucket = self._get_bucket()
        objects = [
            ReportObject(name=blob.name, size=int(blob.size or 0))
            for blob in bucket.client.list_blobs(bucket, prefix=self.prefix)
            if is_relevant_report(blob.name, self.package_name)
        ]
        logger.info(
            "marketplace reports listed",
            extra={"platform": GOOGLE_PLAY, "bucket": self.bucket_name, "count": len(objects)},
        )
        return objects

    def download(self, name: str) -> bytes:
        return self._get_bucket().blob(name).download_as_bytes()
