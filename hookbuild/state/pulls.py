"""
Pull request tracker: turns pull request events into build submissions.

Entries and the build ledger share one readers-writer lock. Provider calls
and engine submit/stop calls are made with the lock released, so a slow
GitHub or engine only delays the event that triggered it.
"""

from typing import TYPE_CHECKING

from hookbuild.core.exceptions import BuildSubmitError, GitHubAPIError, NotAuthenticated
from hookbuild.core.locks import RWLock
from hookbuild.core.logging import get_logger
from hookbuild.models.app import AttachedApp
from hookbuild.models.engine import Build, BuildConfig
from hookbuild.models.pull import PullRequestEntry, PullRequestSnapshot
from hookbuild.state.builds import BuildLedger

if TYPE_CHECKING:
    from hookbuild.services.github.oauth import OAuthSession

logger = get_logger(__name__)

BUILD_TYPE_PULL_REQUEST = "pullrequest"

META_BUILD_TYPE = "github:BuildType"
META_PULL_REQUEST_ID = "github:PullRequestID"
META_PULL_NUMBER = "github:PullNumber"
META_HEAD_HASH = "github:HeadHash"
META_HEAD_OWNER = "github:HeadOwner"
META_HEAD_REPO = "github:HeadRepo"
META_BASE_HASH = "github:BaseHash"
META_BASE_OWNER = "github:BaseOwner"
META_BASE_REPO = "github:BaseRepo"


def build_config_for(pull: PullRequestSnapshot) -> BuildConfig:
    """Describe a pull request build: head is the proposed branch, base the merge target."""
    config = BuildConfig(
        title=pull.title,
        url=pull.html_url,
        head_repo=pull.head.clone_url,
        head_branch=pull.head.ref,
        head_hash=pull.head.sha,
        base_repo=pull.base.clone_url,
        base_branch=pull.base.ref,
        # merge onto the tip of the base branch, not the commit the PR was opened against
        base_hash="",
        group=pull.id,
    )
    config.set_metadata(META_BUILD_TYPE, BUILD_TYPE_PULL_REQUEST)
    config.set_metadata(META_PULL_REQUEST_ID, pull.id)
    config.set_metadata(META_PULL_NUMBER, str(pull.number))
    config.set_metadata(META_HEAD_HASH, pull.head.sha)
    config.set_metadata(META_HEAD_OWNER, pull.head.owner)
    config.set_metadata(META_HEAD_REPO, pull.head.repo)
    config.set_metadata(META_BASE_HASH, pull.base.sha)
    config.set_metadata(META_BASE_OWNER, pull.base.owner)
    config.set_metadata(META_BASE_REPO, pull.base.repo)
    return config


class PullRequestTracker:
    """Maps pull request ids to the builds they spawned."""

    def __init__(self, session: "OAuthSession"):
        self._session = session
        self._lock = RWLock()
        self._entries: dict[str, PullRequestEntry] = {}
        self._ledger = BuildLedger()

    @property
    def ledger(self) -> BuildLedger:
        return self._ledger

    async def get(self, pull_id: str) -> PullRequestEntry | None:
        async with self._lock.read():
            return self._entries.get(pull_id)

    async def is_tracked(self, pull_id: str) -> bool:
        async with self._lock.read():
            return pull_id in self._entries

    async def tracked_ids(self) -> list[str]:
        async with self._lock.read():
            return list(self._entries.keys())

    async def _is_authorized(self, pull: PullRequestSnapshot) -> bool:
        # only collaborators get to run code on our machines
        try:
            client = self._session.client
            is_collaborator = await client.is_collaborator(pull.base.owner, pull.base.repo, pull.author)
        except (GitHubAPIError, NotAuthenticated) as e:
            logger.critical(f"Couldn't check collaborator status on {pull.id}: {e}")
            return False

        if not is_collaborator:
            logger.warning(f"Ignoring pull request {pull.id}, non collaborator: {pull.author}")
            return False
        return True

    async def on_open_or_synchronize(self, attached: AttachedApp, pull: PullRequestSnapshot) -> str | None:
        """
        Authorize, filter and start tracking a pull request, then build it.

        Returns:
            Token of the build submitted for this event, or None
        """
        if not await self._is_authorized(pull):
            return None

        if attached.config.is_ignored_branch(pull.base.ref):
            logger.warning(f"Ignoring pull request {pull.id}, is an ignored branch: {pull.base.ref}")
            return None

        async with self._lock.write():
            entry = self._entries.get(pull.id)
            if entry is None:
                self._entries[pull.id] = PullRequestEntry(
                    pull=pull,
                    merge_on_pass=attached.config.merge_on_pass,
                )
            else:
                entry.pull = pull

        return await self.submit_build(attached, pull)

    async def on_synchronize(self, attached: AttachedApp, pull: PullRequestSnapshot) -> str | None:
        """Build a new head for a tracked pull request; unknown ones are treated as opened."""
        if not await self.is_tracked(pull.id):
            logger.warning(f"Event on unknown/ignored pull request: {pull.id}")
            return await self.on_open_or_synchronize(attached, pull)
        return await self.submit_build(attached, pull)

    async def submit_build(self, attached: AttachedApp, pull: PullRequestSnapshot) -> str | None:
        """
        Submit a build for the pull request's current head.

        Skips heads that are already building or built, and stops the
        previous build first when cancel-on-new-commit is set.

        Returns:
            Token of the new build, or None when nothing was submitted
        """
        head = pull.head.sha
        logger.info(f"Building pull request: {pull.id}")

        async with self._lock.write():
            entry = self._entries.get(pull.id)
            if entry is None:
                logger.warning(f"Pull request {pull.id} is no longer tracked, not building")
                return None
            entry.pull = pull

            previous = entry.build
            if entry.pending_head == head or (
                previous is not None and previous.metadata(META_HEAD_HASH) == head
            ):
                logger.warning(f"Already building/built commit {head} for {pull.id}")
                return None
            entry.pending_head = head

        build = None
        try:
            if previous is not None and attached.config.cancel_on_new_commit:
                logger.info(f"Stopping superseded build {previous.token} for {pull.id}")
                previous.stop()

            build = self._submit(attached, pull)
        finally:
            # a failed attempt must not leave the head marked as in flight
            async with self._lock.write():
                entry = self._entries.get(pull.id)
                current = entry is not None and entry.pending_head == head
                if current and build is None:
                    entry.pending_head = ""
                elif current:
                    entry.replace_build(build)
                    self._ledger.track(build)

        if build is None:
            return None
        if not current:
            # closed or pushed to again while we were submitting
            logger.warning(f"Build {build.token} for {pull.id} was superseded before it was recorded")
            if attached.config.cancel_on_new_commit:
                build.stop()
            return None

        logger.info(f"Started build: {build.token}")
        return build.token

    def _submit(self, attached: AttachedApp, pull: PullRequestSnapshot) -> Build | None:
        config = build_config_for(pull)
        try:
            token = attached.app.submit(config.group, config)
            build = attached.app.lookup(token)
        except BuildSubmitError as e:
            logger.critical(f"Couldn't start build for {pull.id}: {e}")
            return None
        except Exception as e:
            logger.critical(f"Build engine failed for {pull.id}: {e}", exc_info=True)
            return None

        if build is None:
            logger.critical(f"Couldn't get build {token} for {pull.id}")
        return build

    async def on_closed(self, attached: AttachedApp, pull_id: str) -> bool:
        """
        Forget a closed pull request, stopping its build if configured.

        Returns:
            True if the pull request was tracked
        """
        async with self._lock.write():
            entry = self._entries.pop(pull_id, None)
        if entry is None:
            return False

        if entry.build is not None and attached.config.cancel_on_new_commit:
            logger.info(f"Stopping build {entry.build.token} for closed pull request {pull_id}")
            entry.build.stop()
        entry.release()
        logger.info(f"Stopped tracking pull request {pull_id}")
        return True

    async def track_build(self, build: Build) -> bool:
        async with self._lock.write():
            return self._ledger.track(build)

    async def untrack_build(self, build: Build) -> bool:
        async with self._lock.write():
            return self._ledger.untrack(build)
