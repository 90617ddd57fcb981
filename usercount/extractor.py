"""Extraction strategy base class.

Each storefront exposes its user count differently, so each gets its own
strategy. They share one contract: ``extract()`` returns a SourceResult and
never raises. Subclasses only implement ``read_count_text()``, which
retrieves the page and returns the text of the node holding the count,
raising the typed errors from ``usercount.exceptions`` on failure.

Task cancellation is the one thing allowed through, so a cycle timeout
can still unwind an extractor (and any browser session it holds).
"""

from abc import ABC, abstractmethod
from typing import ClassVar

from config.settings import GlobalConfig, SourceConfig, SourceId, get_config
from usercount.exceptions import ExtractionError
from usercount.logger import get_logger
from usercount.validator import SourceResult, parse_count

log = get_logger(__name__)


class BaseExtractor(ABC):
    """Abstract base class for per-source extraction strategies.

    Attributes:
        source: Where and how to find this source's count.
        config: GlobalConfig instance for runtime configuration.
        heavyweight: True for strategies that hold a browser session; the
            aggregator limits these to one at a time.
    """

    heavyweight: ClassVar[bool] = False

    def __init__(
        self,
        source: SourceConfig,
        config: GlobalConfig | None = None,
    ) -> None:
        self.source = source
        self.config = config or get_config()

    @property
    def source_id(self) -> SourceId:
        return self.source.source_id

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def read_count_text(self) -> str:
        """Retrieve the page and return the text carrying the count.

        Raises:
            ExtractionError: Any retrieval or structural failure.
        """
        ...

    async def extract(self) -> SourceResult:
        """Run one extraction attempt and capture its outcome as data.

        Returns:
            SourceResult with either a value or an error, never both.
        """
        log.debug(
            "Starting extraction",
            extractor=self.name,
            source=self.source_id.value,
            url=self.source.url,
        )

        try:
            text = await self.read_count_text()
            value = parse_count(text)

        except ExtractionError as exc:
            log.warning(
                "Extraction failed",
                source=self.source_id.value,
                error_type=exc.kind,
                error=exc.message,
            )
            return SourceResult.failure(self.source_id, exc)

        except Exception as exc:
            log.exception(
                "Unexpected extraction error",
                source=self.source_id.value,
                error_type=type(exc).__name__,
            )
            return SourceResult.failure(self.source_id, exc)

        log.info(
            "Extraction complete",
            source=self.source_id.value,
            value=value,
        )
        return SourceResult.success(self.source_id, value)
