"""Stack template resolution.

A stack's template is found in one of two ways:

1. Direct: the API returns the template stored with the deployment
   (deployments created before 2016-03-20 have none, and the API answers
   with a conflict, which simply means "try the link").
2. Linked: the deployment references a template URI. Every distinct URI is
   registered once (the first stack wins) and downloaded once after all
   stacks were processed, however many stacks share it.

Template content is normalized to compact JSON so equal templates compare
equal regardless of the formatting they were served with.

Public API (the "studs"):
    TemplateDownloader: Fetch template bodies over HTTP(S)
    TemplateResolver: Resolve, deduplicate and download stack templates
    normalize_template: Canonical text form of a template
"""

import json
import logging
import time
from collections.abc import Iterable
from typing import Any

import requests

from azcollect.cloud_client import CloudApiClient
from azcollect.config import CollectorConfig
from azcollect.context import CollectionContext, StackState
from azcollect.fallback_policy import Operation, guarded
from azcollect.log_sanitizer import LogSanitizer
from azcollect.models import Stack, StackTemplate

logger = logging.getLogger(__name__)


def normalize_template(content: Any) -> str:
    """Return ``content`` as compact JSON text.

    Args:
        content: Decoded template (dict/list) or raw JSON text/bytes

    Raises:
        ValueError: If text content is not valid JSON
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    if isinstance(content, str):
        content = json.loads(content)
    return json.dumps(content, separators=(",", ":"), ensure_ascii=False)


class TemplateDownloader:
    """Download linked templates, honoring proxy and TLS settings."""

    def __init__(
        self,
        proxy: str | None = None,
        ssl_verify: bool = True,
        timeout: int = 30,
        session: requests.Session | None = None,
    ):
        self.proxies = {"http": proxy, "https": proxy} if proxy else None
        self.ssl_verify = ssl_verify
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: CollectorConfig) -> "TemplateDownloader":
        return cls(
            proxy=config.proxy,
            ssl_verify=config.ssl_verify,
            timeout=config.template_download_timeout,
        )

    def download(self, uri: str) -> str:
        """Download and normalize the template at ``uri``.

        Raises:
            requests.RequestException: On transport errors or an HTTP error status
            ValueError: If the body is not JSON
        """
        response = self.session.get(
            uri, proxies=self.proxies, verify=self.ssl_verify, timeout=self.timeout
        )
        response.raise_for_status()
        return normalize_template(response.content)


class TemplateResolver:
    """Resolve templates of changed stacks with per-URI download dedup."""

    def __init__(
        self,
        client: CloudApiClient,
        downloader: TemplateDownloader,
        context: CollectionContext,
    ):
        self.client = client
        self.downloader = downloader
        self.context = context

    @staticmethod
    def _init_template(stack: Stack, content: str | None = None) -> StackTemplate:
        version = stack.template_link.content_version if stack.template_link else None
        return StackTemplate(
            uid=stack.id,
            name=stack.name,
            description=f"contentVersion: {version}",
            content=content,
        )

    def resolve(self, stack: Stack) -> StackTemplate | None:
        """Resolve the template record of one stack (memoized per stack).

        Linked templates are only registered here; their content is filled
        in by ``download_pending()``.
        """
        if stack.id in self.context.stack_templates:
            return self.context.stack_templates[stack.id]

        template = self._direct_template(stack) or self._uri_template(stack)
        self.context.stack_templates[stack.id] = template
        return template

    def _direct_template(self, stack: Stack) -> StackTemplate | None:
        content = guarded(
            Operation.STACK_TEMPLATE,
            self.client.get_stack_template,
            stack.resource_group,
            stack.name,
        )
        if content is None:
            return None
        template = self._init_template(stack, normalize_template(content))
        self.context.template_directs[stack.id] = template
        return template

    def _uri_template(self, stack: Stack) -> StackTemplate | None:
        if stack.template_link is None or not stack.template_link.uri:
            return None
        uri = stack.template_link.uri
        existing = self.context.template_uris.get(uri)
        if existing is not None:
            return existing
        template = self._init_template(stack)
        template.uri = uri
        self.context.template_uris[uri] = template
        return template

    def download_pending(self) -> None:
        """Download every registered URI that has no content yet, once each."""
        pending = [t for t in self.context.template_uris.values() if t.content is None]
        logger.info("Retrieving templates...")
        start_time = time.time()
        for template in pending:
            logger.debug(f"Downloading template {LogSanitizer.sanitize_uri(template.uri or '')}")
            template.content = guarded(
                Operation.TEMPLATE_DOWNLOAD, self.downloader.download, template.uri
            )
        logger.info(
            f"Retrieving templates...Complete - Count [{len(self.context.template_uris)}] "
            f"({time.time() - start_time:.2f}s)"
        )

    def collect(self, stacks: Iterable[Stack]) -> list[StackTemplate]:
        """Resolve templates for all changed stacks and download linked ones.

        Unchanged stacks are skipped: their templates are already in the
        snapshot.

        Returns:
            Linked templates followed by direct templates, only those with content
        """
        for stack in stacks:
            if self.context.stack_state(stack.id) is StackState.UNCHANGED:
                continue
            self.resolve(stack)

        self.download_pending()

        return [
            template
            for template in [
                *self.context.template_uris.values(),
                *self.context.template_directs.values(),
            ]
            if template.content
        ]


__all__ = ["TemplateDownloader", "TemplateResolver", "normalize_template"]
