"""Business flow orchestration.

Pipeline for ``generate_and_save_flows_by_keywords``:
  1. Acquire every repository in parallel (fatal on any failure)
  2. Scan each working copy into a ProjectStructure (fatal on failure)
  3. Build one dependency graph and rank entry points once
  4. Per keyword and matching entry point: reuse the stored flow for
     (keyword, primary version, path) or trace + render + persist it.
     Generations run on a bounded pool; failures are logged and omitted.
"""

import asyncio
import json
import logging
import threading
from typing import Dict, List, Optional, Sequence

from ..analysis.dependency_analyzer import ServiceDependencyAnalyzer, StructureBatch
from ..analysis.entry_point_finder import EntryPointFinder, matches_keyword
from ..analysis.flow_tracer import BusinessFlowTracer
from ..analysis.models import (
    CallChain,
    EntryPoint,
    EntryPointMatch,
    ProjectStructure,
    ServiceDependencyGraph,
)
from ..analysis.serialization import call_chain_from_dict
from ..constants import DEFAULT_MAX_DEPTH, DEFAULT_MAX_WORKERS, DEFAULT_PAGE_SIZE
from ..diagrams.mermaid import MermaidGenerator
from ..exceptions import MissingCredentialsError, RepositoryAcquisitionError
from .collaborators import NarrativeGenerator, ProjectScanner, RepositoryProvider
from .models import (
    BusinessFlowDocument,
    BusinessFlowResult,
    GitCredentials,
    RepositoryInfo,
    flow_path,
)
from .store import FlowDocumentStore

logger = logging.getLogger(__name__)


class BusinessFlowService:
    """Generate, persist and query business flows.

    Args:
        scanner: Turns a working copy into a ProjectStructure.
        repository_provider: Makes repositories available locally.
        store: Persistence for flow documents.
        narrative_generator: Optional source of flow descriptions.
        max_workers: Concurrent flow generations.
    """

    def __init__(
        self,
        scanner: ProjectScanner,
        repository_provider: RepositoryProvider,
        store: FlowDocumentStore,
        analyzer: Optional[ServiceDependencyAnalyzer] = None,
        finder: Optional[EntryPointFinder] = None,
        tracer: Optional[BusinessFlowTracer] = None,
        mermaid: Optional[MermaidGenerator] = None,
        narrative_generator: Optional[NarrativeGenerator] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.scanner = scanner
        self.repository_provider = repository_provider
        self.store = store
        self.analyzer = analyzer or ServiceDependencyAnalyzer()
        self.finder = finder or EntryPointFinder()
        self.tracer = tracer or BusinessFlowTracer()
        self.mermaid = mermaid or MermaidGenerator()
        self.narrative_generator = narrative_generator
        self.max_workers = max(1, max_workers)

    # =========================================================================
    # Single-project operations
    # =========================================================================

    def analyze_dependencies(self, project_paths: Sequence[str]) -> ServiceDependencyGraph:
        structures = self._scan_projects(project_paths)
        return self.analyzer.analyze(structures)

    def generate_flow(
        self,
        entry_point: EntryPoint,
        project_path: str,
        graph: ServiceDependencyGraph,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> BusinessFlowResult:
        """Trace and render one entry point of a project (nothing is stored).

        Raises:
            TraceError: The entry point is not part of the project.
        """
        structure = self.scanner.scan_project(project_path)
        return self._build_result(
            entry_point, structure, graph, max_depth, StructureBatch([structure]),
        )

    def generate_all_flows(
        self,
        project_path: str,
        graph: ServiceDependencyGraph,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> List[BusinessFlowResult]:
        structure = self.scanner.scan_project(project_path)
        batch = StructureBatch([structure])

        results = []
        for ep in structure.entry_points:
            try:
                results.append(self._build_result(ep, structure, graph, max_depth, batch))
            except Exception as e:
                logger.error(f"Error generating flow for {ep.qualified_method}: {e}", exc_info=True)
        logger.info(
            f"Generated {len(results)}/{len(structure.entry_points)} flow(s) "
            f"for {structure.project_name}"
        )
        return results

    # =========================================================================
    # Keyword-driven generation
    # =========================================================================

    def generate_and_save_flows_by_keywords(
        self,
        keywords: Sequence[str],
        repository_urls: Sequence[str],
        credentials: Optional[GitCredentials],
        max_depth: int = DEFAULT_MAX_DEPTH,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, List[BusinessFlowResult]]:
        """Generate flows for every keyword, reusing stored ones.

        Returns:
            Results per keyword, in keyword order.

        Raises:
            MissingCredentialsError: ``credentials`` is None.
            RepositoryAcquisitionError: A repository could not be acquired
                or scanned.
        """
        return asyncio.run(self.agenerate_and_save_flows_by_keywords(
            keywords, repository_urls, credentials, max_depth, cancel_event,
        ))

    async def agenerate_and_save_flows_by_keywords(
        self,
        keywords: Sequence[str],
        repository_urls: Sequence[str],
        credentials: Optional[GitCredentials],
        max_depth: int = DEFAULT_MAX_DEPTH,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, List[BusinessFlowResult]]:
        if credentials is None:
            raise MissingCredentialsError(
                "Repository credentials are required; pass GitCredentials.anonymous() "
                "for public repositories"
            )
        if not repository_urls:
            raise RepositoryAcquisitionError("No repository URLs given")

        logger.info(
            f"Generating flows for keywords {list(keywords)} across "
            f"{len(repository_urls)} repository(ies)"
        )

        # 1-2. Acquire + scan
        repositories = await self._acquire_repositories(repository_urls, credentials)
        structures = self._scan_projects([r.local_path for r in repositories])

        primary_version = repositories[0].latest_commit_id or "unknown"
        primary_url = repository_urls[0]

        # 3. Graph + ranking
        graph = self.analyzer.analyze(structures)
        batch = StructureBatch(structures)
        matches = self.finder.find_by_keywords(keywords, structures)
        logger.info(f"Found {len(matches)} matching entry point(s)")

        # 4. Per keyword generation
        semaphore = asyncio.Semaphore(self.max_workers)
        results: Dict[str, List[BusinessFlowResult]] = {}

        for keyword in keywords:
            if _cancelled(cancel_event):
                logger.info("Flow generation cancelled")
                break

            keyword_matches = [m for m in matches if matches_keyword(m, keyword)]
            flows = await asyncio.gather(*(
                self._flow_with_semaphore(
                    semaphore, keyword, match, batch, graph, max_depth,
                    primary_version, primary_url, list(repository_urls), cancel_event,
                )
                for match in keyword_matches
            ))
            results[keyword] = [f for f in flows if f is not None]

        total = sum(len(v) for v in results.values())
        logger.info(f"Flow generation complete: {len(results)} keyword(s), {total} flow(s)")
        return results

    async def _acquire_repositories(
        self,
        repository_urls: Sequence[str],
        credentials: GitCredentials,
    ) -> List[RepositoryInfo]:
        """All repositories or nothing; the first failure is raised."""
        return list(await asyncio.gather(*(
            asyncio.to_thread(self._acquire_repository, url, credentials)
            for url in repository_urls
        )))

    def _acquire_repository(self, url: str, credentials: GitCredentials) -> RepositoryInfo:
        try:
            return self.repository_provider.get_or_clone_repository(url, credentials)
        except RepositoryAcquisitionError:
            logger.error(f"Failed to acquire repository: {url}")
            raise
        except Exception as e:
            logger.error(f"Failed to acquire repository: {url}: {e}", exc_info=True)
            raise RepositoryAcquisitionError(f"Failed to acquire repository {url}: {e}", url) from e

    def _scan_projects(self, project_paths: Sequence[str]) -> List[ProjectStructure]:
        structures = []
        for path in project_paths:
            try:
                structures.append(self.scanner.scan_project(path))
            except Exception as e:
                logger.error(f"Failed to scan project: {path}: {e}", exc_info=True)
                raise RepositoryAcquisitionError(f"Failed to scan project {path}: {e}") from e
        return structures

    async def _flow_with_semaphore(
        self,
        semaphore: asyncio.Semaphore,
        keyword: str,
        match: EntryPointMatch,
        batch: StructureBatch,
        graph: ServiceDependencyGraph,
        max_depth: int,
        version: str,
        primary_url: str,
        repository_urls: List[str],
        cancel_event: Optional[threading.Event],
    ) -> Optional[BusinessFlowResult]:
        async with semaphore:
            if _cancelled(cancel_event):
                return None
            try:
                return await asyncio.to_thread(
                    self._generate_or_load, keyword, match, batch, graph, max_depth,
                    version, primary_url, repository_urls,
                )
            except Exception as e:
                logger.error(
                    f"Error generating flow for {match.entry_point.qualified_method} "
                    f"(keyword={keyword}): {e}",
                    exc_info=True,
                )
                return None

    def _generate_or_load(
        self,
        keyword: str,
        match: EntryPointMatch,
        batch: StructureBatch,
        graph: ServiceDependencyGraph,
        max_depth: int,
        version: str,
        primary_url: str,
        repository_urls: List[str],
    ) -> BusinessFlowResult:
        ep = match.entry_point
        api_path = flow_path(ep)

        existing = self.store.find_existing(keyword, version, api_path)
        if existing is not None:
            logger.info(f"Flow already stored, using cache: keyword={keyword}, api={api_path}")
            return self._result_from_document(existing, match)

        structure = batch.find_by_project(match.project_name)
        if structure is None:
            raise RepositoryAcquisitionError(f"No scanned project named {match.project_name}")

        result = self._build_result(ep, structure, graph, max_depth, batch)
        result.keyword = keyword
        result.relevance_score = match.relevance_score

        document = self._build_document(result, keyword, version, primary_url, repository_urls)
        saved, created = self.store.save(document)
        if not created:
            return self._result_from_document(saved, match)

        result.flow_id = saved.flow_id
        return result

    # =========================================================================
    # Queries
    # =========================================================================

    def search_by_keyword(
        self,
        keyword: str,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> List[BusinessFlowDocument]:
        logger.info(f"Searching stored flows: keyword={keyword}")
        return self.store.search_by_keyword(keyword, page, size)

    def search_by_service(
        self,
        service_name: str,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> List[BusinessFlowDocument]:
        logger.info(f"Searching stored flows: service={service_name}")
        return self.store.search_by_service(service_name, page, size)

    def search_by_api_path(self, api_path: str) -> Optional[BusinessFlowDocument]:
        return self.store.search_by_api_path(api_path)

    def get_flow_detail(self, flow_id: str) -> Optional[BusinessFlowDocument]:
        return self.store.get(flow_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_result(
        self,
        entry_point: EntryPoint,
        structure: ProjectStructure,
        graph: ServiceDependencyGraph,
        max_depth: int,
        batch: StructureBatch,
    ) -> BusinessFlowResult:
        chain = self.tracer.trace(entry_point, structure, graph, max_depth, batch)
        return BusinessFlowResult(
            flow_id=None,
            entry_point=entry_point,
            call_chain=chain,
            mermaid_diagram=self.mermaid.generate_sequence_diagram(chain),
            node_count=len(chain.nodes),
            max_depth=chain.max_depth,
            description=self._describe(chain),
            related_services=chain.services(),
        )

    def _describe(self, chain: CallChain) -> Optional[str]:
        if self.narrative_generator is None:
            return None
        try:
            return self.narrative_generator.describe(chain)
        except Exception as e:
            logger.warning(f"Narrative generation failed for {chain.entry_point.qualified_method}: {e}")
            return None

    def _build_document(
        self,
        result: BusinessFlowResult,
        keyword: str,
        version: str,
        primary_url: str,
        repository_urls: List[str],
    ) -> BusinessFlowDocument:
        ep = result.entry_point
        return BusinessFlowDocument(
            keyword=keyword,
            repository_version=version,
            api_path=flow_path(ep),
            entry_class=ep.class_name,
            entry_method=ep.method_name,
            entry_type=ep.type.value,
            http_method=ep.http_method,
            relevance_score=result.relevance_score,
            primary_repository=primary_url,
            dependency_repositories=list(repository_urls),
            mermaid_diagram=result.mermaid_diagram,
            call_chain_json=_serialize_chain(result.call_chain),
            related_services=list(result.related_services),
            node_count=result.node_count,
            max_depth=result.max_depth,
            description=result.description,
        )

    def _result_from_document(
        self,
        document: BusinessFlowDocument,
        match: EntryPointMatch,
    ) -> BusinessFlowResult:
        chain = None
        if document.call_chain_json:
            try:
                chain = call_chain_from_dict(document.call_chain_json)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Stored call chain of flow {document.flow_id} is unreadable: {e}")

        return BusinessFlowResult(
            flow_id=document.flow_id,
            entry_point=match.entry_point,
            call_chain=chain,
            mermaid_diagram=document.mermaid_diagram,
            node_count=document.node_count,
            max_depth=document.max_depth,
            description=document.description,
            keyword=document.keyword,
            relevance_score=document.relevance_score,
            related_services=list(document.related_services or []),
            cached=True,
        )


def _serialize_chain(chain: Optional[CallChain]) -> Optional[dict]:
    """JSON form of a chain, or None when it cannot be serialized."""
    if chain is None:
        return None
    try:
        data = chain.to_dict()
        json.dumps(data)
        return data
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to serialize call chain {chain.chain_id}: {e}")
        return None


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()
