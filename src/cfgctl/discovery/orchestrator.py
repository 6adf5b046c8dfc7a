"""Bounded-concurrency resource discovery."""

import asyncio
import base64
import binascii
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from cfgctl.clients.aws_client import AWSClient, SSOPortalClient
from cfgctl.core.exceptions import DiscoveryError, DiscoveryTimeoutError, LoginRequiredError
from cfgctl.core.models import AccountRole, AuthMode, Cluster, DiscoveredResource, DiscoveryResult
from cfgctl.utils.logging import get_logger

logger = get_logger(__name__)

ACCESS_DENIED_ERROR_CODES = frozenset(
    {"AccessDeniedException", "AccessDenied", "UnauthorizedOperation"}
)

ClientFactory = Callable[[str, str], AWSClient]


def is_access_denied(error: BaseException) -> bool:
    """Return True for AWS errors caused by missing permissions."""
    if not isinstance(error, ClientError):
        return False
    return error.response.get("Error", {}).get("Code") in ACCESS_DENIED_ERROR_CODES


def decode_ca_data(data: str | None) -> bytes:
    """Decode base64 certificate authority data; missing data decodes to b""."""
    if not data:
        return b""
    return base64.b64decode(data, validate=True)


def parse_cluster(
    response: dict[str, Any],
    profile: str,
    region: str,
    name: str,
    auth_mode: AuthMode,
) -> Cluster:
    """Build a Cluster from a DescribeCluster response.

    Raises:
        DiscoveryError: If the response is missing the cluster or its endpoint,
            or the CA data is not valid base64
    """
    where = f"eks cluster {name!r} for profile {profile!r} region {region!r}"

    cluster = response.get("cluster")
    if not cluster:
        raise DiscoveryError(f"describe {where} returned no cluster")

    endpoint = cluster.get("endpoint")
    if not endpoint:
        raise DiscoveryError(f"describe {where} missing endpoint")

    try:
        ca_data = decode_ca_data(cluster.get("certificateAuthority", {}).get("data"))
    except (binascii.Error, ValueError) as e:
        raise DiscoveryError(f"decode {where} certificate authority: {e}") from e

    return Cluster(
        profile=profile,
        region=region,
        name=name,
        endpoint=endpoint,
        ca_data=ca_data,
        auth_mode=auth_mode,
    )


def demo_account_roles() -> list[AccountRole]:
    """Fixed sample accounts used when discovery runs in demo mode."""
    return [
        AccountRole(account_id="111111111111", account_name="demo", role_name="AdminAccess"),
        AccountRole(account_id="111111111111", account_name="demo", role_name="ReadOnly"),
        AccountRole(account_id="222222222222", account_name="sandbox", role_name="AdminAccess"),
    ]


class _Accumulator:
    """Resources and warnings shared by all discovery tasks of a run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.resources: list[DiscoveredResource] = []
        self.warnings: list[str] = []

    def add(self, resource: DiscoveredResource) -> None:
        with self._lock:
            self.resources.append(resource)

    def warn(self, message: str) -> None:
        logger.warning("discovery_skipped", reason=message)
        with self._lock:
            self.warnings.append(message)

    def result(self) -> DiscoveryResult:
        with self._lock:
            return DiscoveryResult(
                resources=sorted(self.resources, key=lambda resource: resource.sort_key()),
                warnings=sorted(self.warnings),
            )


def _first_error(group: BaseExceptionGroup) -> BaseException:
    error: BaseException = group
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


class DiscoveryOrchestrator:
    """Runs discovery calls under a bounded worker pool.

    One task is scheduled per unit of work (a profile/region pair, or an
    account). At most ``max_workers`` tasks run at once and each blocking
    API call is bounded by ``timeout_seconds``. Calls run on a thread pool
    of ``max_workers`` threads created for each run. Access-denied failures turn
    into warnings; any other failure cancels the remaining tasks and is
    raised to the caller.
    """

    def __init__(self, max_workers: int = 10, timeout_seconds: float = 30.0):
        """Initialize orchestrator.

        Args:
            max_workers: Maximum number of concurrently running tasks
            timeout_seconds: Timeout applied to every API call
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds

    def _executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="cfgctl-discovery"
        )

    async def _call(
        self,
        executor: ThreadPoolExecutor,
        description: str,
        func: Callable[..., Any],
        *args: Any,
    ) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(executor, func, *args), timeout=self.timeout_seconds
            )
        except TimeoutError as e:
            raise DiscoveryTimeoutError(
                f"{description} timed out after {self.timeout_seconds}s"
            ) from e

    async def _run(self, jobs: Iterable[Callable[[], Any]]) -> None:
        semaphore = asyncio.Semaphore(self.max_workers)

        async def bounded(job: Callable[[], Any]) -> None:
            async with semaphore:
                await job()

        try:
            async with asyncio.TaskGroup() as group:
                for job in jobs:
                    group.create_task(bounded(job))
        except BaseExceptionGroup as eg:
            raise _first_error(eg)

    async def discover_clusters(
        self,
        profiles: list[str],
        regions: list[str],
        client_factory: ClientFactory,
        auth_mode: AuthMode = AuthMode.DEFAULT,
    ) -> DiscoveryResult:
        """Discover EKS clusters across every profile and region.

        Args:
            profiles: Profiles to scan
            regions: Regions to scan
            client_factory: Builds a client for ``(profile, region)``
            auth_mode: Auth mode recorded on every discovered cluster

        Returns:
            Clusters sorted by (profile, region, name) and sorted warnings

        Raises:
            DiscoveryError: On any failure other than access denied
        """
        accumulator = _Accumulator()
        executor = self._executor()

        def job(profile: str, region: str) -> Callable[[], Any]:
            return lambda: self._scan_clusters(
                executor, client_factory, profile, region, auth_mode, accumulator
            )

        logger.info(
            "cluster_discovery_started",
            profiles=len(profiles),
            regions=len(regions),
            max_workers=self.max_workers,
        )
        try:
            await self._run(job(profile, region) for profile in profiles for region in regions)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        result = accumulator.result()
        logger.info(
            "cluster_discovery_completed",
            clusters=len(result.resources),
            warnings=len(result.warnings),
        )
        return result

    async def _scan_clusters(
        self,
        executor: ThreadPoolExecutor,
        client_factory: ClientFactory,
        profile: str,
        region: str,
        auth_mode: AuthMode,
        accumulator: _Accumulator,
    ) -> None:
        where = f"profile {profile!r} region {region!r}"

        try:
            client = await asyncio.get_running_loop().run_in_executor(
                executor, client_factory, profile, region
            )
            names = await self._call(
                executor, f"list eks clusters for {where}", client.list_eks_clusters
            )
        except ClientError as e:
            if is_access_denied(e):
                accumulator.warn(
                    f'skipping profile "{profile}" region "{region}": '
                    "access denied for eks:ListClusters"
                )
                return
            raise DiscoveryError(f"list eks clusters for {where}: {e}") from e
        except BotoCoreError as e:
            raise DiscoveryError(f"list eks clusters for {where}: {e}") from e

        logger.debug("eks_clusters_found", profile=profile, region=region, count=len(names))

        for name in names:
            try:
                response = await self._call(
                    executor,
                    f"describe eks cluster {name!r} for {where}",
                    client.get_eks_cluster_info,
                    name,
                )
            except ClientError as e:
                if is_access_denied(e):
                    accumulator.warn(
                        f'skipping cluster "{name}" for profile "{profile}" '
                        f'region "{region}": access denied'
                    )
                    continue
                raise DiscoveryError(f"describe eks cluster {name!r} for {where}: {e}") from e
            except BotoCoreError as e:
                raise DiscoveryError(f"describe eks cluster {name!r} for {where}: {e}") from e

            accumulator.add(parse_cluster(response, profile, region, name, auth_mode))

    async def discover_account_roles(
        self,
        client: SSOPortalClient,
        access_token: str,
        role_filter: Iterable[str] | None = None,
    ) -> DiscoveryResult:
        """Discover SSO account/role pairs visible to a token.

        Accounts are listed once; roles are then listed per account under the
        worker pool. A non-empty ``role_filter`` keeps only roles whose name
        matches exactly (after trimming).

        Args:
            client: SSO portal client
            access_token: Bearer token from the SSO cache
            role_filter: Role names to keep (optional)

        Returns:
            AccountRoles sorted by (account name, account id, role) and sorted warnings

        Raises:
            LoginRequiredError: If the portal rejects the token
            DiscoveryError: On any other failure except per-account access denied
        """
        wanted = {role.strip() for role in role_filter or [] if role.strip()}
        accumulator = _Accumulator()
        executor = self._executor()

        def job(account: dict[str, str]) -> Callable[[], Any]:
            return lambda: self._scan_account(
                executor, client, access_token, account, wanted, accumulator
            )

        try:
            try:
                accounts = await self._call(
                    executor, "list sso accounts", client.list_accounts, access_token
                )
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") == "UnauthorizedException":
                    raise LoginRequiredError(
                        "sso session missing or expired, "
                        "run 'cfgctl login' or 'aws sso login' to refresh"
                    ) from e
                raise DiscoveryError(f"list sso accounts: {e}") from e
            except BotoCoreError as e:
                raise DiscoveryError(f"list sso accounts: {e}") from e

            logger.info("account_discovery_started", accounts=len(accounts))
            await self._run(job(account) for account in accounts)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        result = accumulator.result()
        logger.info(
            "account_discovery_completed",
            roles=len(result.resources),
            warnings=len(result.warnings),
        )
        return result

    async def _scan_account(
        self,
        executor: ThreadPoolExecutor,
        client: SSOPortalClient,
        access_token: str,
        account: dict[str, str],
        wanted: set[str],
        accumulator: _Accumulator,
    ) -> None:
        account_id = (account.get("accountId") or "").strip()
        if not account_id:
            raise DiscoveryError("list sso accounts returned an account without an id")
        account_name = account.get("accountName") or ""

        try:
            roles = await self._call(
                executor,
                f"list account roles for {account_id}",
                client.list_account_roles,
                access_token,
                account_id,
            )
        except ClientError as e:
            if is_access_denied(e):
                accumulator.warn(
                    f'skipping account "{account_name}" ({account_id}): '
                    "access denied for sso:ListAccountRoles"
                )
                return
            raise DiscoveryError(f"list account roles for {account_id}: {e}") from e
        except BotoCoreError as e:
            raise DiscoveryError(f"list account roles for {account_id}: {e}") from e

        for role in roles:
            if wanted and role not in wanted:
                continue
            accumulator.add(
                AccountRole(account_id=account_id, account_name=account_name, role_name=role)
            )
