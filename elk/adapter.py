"""
Elasticsearch adapter for bulk writes and simple queries.
Uses official client; keeps retries/backoff minimal and aligned with single-node needs.
"""

from __future__ import annotations

import random
import time
from typing import Dict, Iterable, List, Optional

from elasticsearch import Elasticsearch, helpers

from core.config import Settings, settings as default_settings


class ElasticsearchAdapter:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or default_settings
        if not settings.elasticsearch_url:
            raise ValueError("ELASTICSEARCH_URL is required for ElasticsearchAdapter")

        client_args: Dict = {
            "hosts": [settings.elasticsearch_url],
            "verify_certs": settings.elasticsearch_verify_certs,
        }

        if settings.elasticsearch_api_key:
            client_args["api_key"] = settings.elasticsearch_api_key
        elif settings.elasticsearch_user and settings.elasticsearch_pass:
            client_args["basic_auth"] = (settings.elasticsearch_user, settings.elasticsearch_pass)

        if settings.elasticsearch_ca_cert:
            client_args["ca_certs"] = settings.elasticsearch_ca_cert

        self.client = Elasticsearch(**client_args)
        self.batch_size = settings.bulk_batch_size

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except Exception:  # noqa: BLE001
            return False

    def bulk_index(self, index: str, docs: Iterable[Dict], max_attempts: int = 3):
        doc_list = list(docs)
        if not doc_list:
            return

        for start in range(0, len(doc_list), self.batch_size):
            actions = [{"_index": index, "_source": doc} for doc in doc_list[start : start + self.batch_size]]
            for attempt in range(1, max_attempts + 1):
                try:
                    helpers.bulk(self.client, actions, stats_only=True, raise_on_error=True, max_retries=0)
                    break
                except Exception:  # noqa: BLE001
                    if attempt >= max_attempts:
                        raise
                    time.sleep(2 ** (attempt - 1) + random.random())

    def search_by_host(self, index: str, host: str, size: int = 50) -> List[Dict]:
        try:
            res = self.client.search(
                index=index,
                size=size,
                query={"bool": {"should": [{"term": {"host.keyword": host}}, {"term": {"ip.keyword": host}}]}},
                sort=[{"port": {"order": "asc"}}],
            )
            hits = res.get("hits", {}).get("hits", [])
            return [h.get("_source", {}) for h in hits]
        except Exception:  # noqa: BLE001
            return []
