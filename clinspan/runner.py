"""Batch drivers: text directory -> XMI and code files, XMI directory -> code files.

Each document is processed independently. A document that fails to load,
annotate or serialize is logged and recorded in its :class:`DocumentResult`;
the rest of the batch carries on. Either both outputs of a document are
written or neither is.
"""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from pydantic import BaseModel, ConfigDict

from clinspan.document import load_document
from clinspan.errors import ClinspanError
from clinspan.export import write_code_file
from clinspan.extract import extract_codes
from clinspan.logging import setup_logging
from clinspan.pipeline.chain import StageChain
from clinspan.span import Mention
from clinspan.xmi import read_xmi, write_xmi

logger = setup_logging()


class DocumentResult(BaseModel):
    """Outcome of processing one input file.

    Attributes:
        document_id: Base name of the input file.
        mentions: Number of mentions in the finished graph.
        codes: Number of code strings written.
        xmi_path: Graph file written, if any.
        code_path: Code file written, if any.
        errors: Error messages; non-empty means nothing was written.
    """

    model_config = {"frozen": True}

    document_id: str
    mentions: int = 0
    codes: int = 0
    xmi_path: Path | None = None
    code_path: Path | None = None
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


class RunResult(BaseModel):
    """Aggregate outcome of a batch run."""

    model_config = {"frozen": True}

    documents_processed: int
    documents_failed: int
    total_mentions: int
    total_codes: int
    document_results: tuple[DocumentResult, ...] = ()

    @classmethod
    def from_results(cls, results: Sequence[DocumentResult]) -> "RunResult":
        return cls(
            documents_processed=len(results),
            documents_failed=sum(1 for r in results if r.errors),
            total_mentions=sum(r.mentions for r in results),
            total_codes=sum(r.codes for r in results),
            document_results=tuple(results),
        )


@dataclass
class ProgressTracker:
    """Running totals for a batch, logged every ``report_interval`` seconds."""

    total: int
    report_interval: float = 30.0
    completed: int = 0
    failed: int = 0
    codes: int = 0
    started: float = field(default_factory=time.monotonic)
    last_report: float = field(default_factory=time.monotonic)

    def record(self, result: DocumentResult) -> None:
        self.completed += 1
        if result.errors:
            self.failed += 1
        self.codes += result.codes
        now = time.monotonic()
        if now - self.last_report >= self.report_interval:
            logger.info(f"Progress: {self.summary(now)}")
            self.last_report = now

    def summary(self, now: float | None = None) -> str:
        elapsed = (time.monotonic() if now is None else now) - self.started
        rate = self.completed / elapsed if elapsed > 0 else 0.0
        return (
            f"{self.completed}/{self.total} documents ({self.failed} failed), "
            f"{self.codes} codes, {rate:.2f} docs/sec"
        )


def find_input_files(input_dir: Path | str, suffix: str | None = None) -> list[Path]:
    """List the regular, non-hidden files of a directory, sorted by name.

    Subdirectories are not descended into. With ``suffix``, only files whose
    name ends with it are returned.
    """
    files = [
        path
        for path in Path(input_dir).iterdir()
        if path.is_file() and not path.name.startswith(".") and (suffix is None or path.name.endswith(suffix))
    ]
    return sorted(files, key=lambda p: p.name)


async def _run_all(
    paths: Sequence[Path],
    process: Callable[[Path], Awaitable[DocumentResult]],
    workers: int,
    progress_interval: float,
) -> RunResult:
    tracker = ProgressTracker(total=len(paths), report_interval=progress_interval)

    async def process_with_progress(path: Path) -> DocumentResult:
        result = await process(path)
        tracker.record(result)
        return result

    results: list[DocumentResult] = []
    if workers > 1:
        semaphore = asyncio.Semaphore(workers)

        async def process_with_limit(path: Path) -> DocumentResult:
            async with semaphore:
                return await process_with_progress(path)

        results = list(await asyncio.gather(*[process_with_limit(path) for path in paths]))
    else:
        for path in paths:
            results.append(await process_with_progress(path))

    logger.info(f"Finished: {tracker.summary()}")
    return RunResult.from_results(results)


def _failed(document_id: str, error: Exception) -> DocumentResult:
    logger.exception(f"Document {document_id} failed: {error}")
    return DocumentResult(document_id=document_id, errors=(str(error),))


class PipelineRunner(BaseModel):
    """Run the stage chain over text files and write their outputs.

    Attributes:
        chain: The assembled stage chain, shared read-only by all documents.
        xmi_dir: Where graph files go; created on demand.
        codes_dir: Where code files go, or None to skip them. Must exist.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    chain: StageChain
    xmi_dir: Path
    codes_dir: Path | None = None

    async def process_document(self, path: Path | str) -> DocumentResult:
        """Load, annotate and serialize one document.

        The XMI is written first; if the code file then fails, the XMI is
        removed again so the document leaves no output behind.
        """
        path = Path(path)
        document_id = path.name
        try:
            document = load_document(path)
            document_id = document.document_id
            graph = await self.chain.run(document)
            codes = extract_codes(graph)
            xmi_file = write_xmi(document, graph, self.xmi_dir)
            code_file = None
            if self.codes_dir is not None:
                try:
                    code_file = write_code_file(codes, self.codes_dir, document_id)
                except ClinspanError:
                    xmi_file.unlink(missing_ok=True)
                    raise
        except Exception as e:
            return _failed(document_id, e)

        logger.debug(f"{document_id}: {len(codes)} codes")
        return DocumentResult(
            document_id=document_id,
            mentions=len(graph.select(Mention)),
            codes=len(codes),
            xmi_path=xmi_file,
            code_path=code_file,
        )

    async def run(self, paths: Sequence[Path], workers: int = 1, progress_interval: float = 30.0) -> RunResult:
        """Process every path, sequentially or with up to ``workers`` at once."""
        return await _run_all(paths, self.process_document, workers, progress_interval)


class CodeExtractionRunner(BaseModel):
    """Turn previously written XMI files into code files.

    Each code file is named after the source document recorded in the XMI.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    codes_dir: Path

    async def process_document(self, path: Path | str) -> DocumentResult:
        path = Path(path)
        document_id = path.name
        try:
            document, graph = read_xmi(path)
            document_id = document.document_id
            codes = extract_codes(graph)
            code_file = write_code_file(codes, self.codes_dir, document_id)
        except Exception as e:
            return _failed(document_id, e)
        return DocumentResult(
            document_id=document_id,
            mentions=len(graph.select(Mention)),
            codes=len(codes),
            code_path=code_file,
        )

    async def run(self, paths: Sequence[Path], workers: int = 1, progress_interval: float = 30.0) -> RunResult:
        return await _run_all(paths, self.process_document, workers, progress_interval)
