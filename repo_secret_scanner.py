#!/usr/bin/env python3
"""
===================================================================
GIT HISTORY AWS CREDENTIAL SCANNER
===================================================================

PURPOSE:
    Walks every branch and every commit of a git repository looking for
    committed AWS access key pairs, and confirms each candidate against
    the live AWS IAM API before reporting it. Only keys that the
    authority recognises end up in the report.

FEATURES:
    ✓ Full history traversal (all branches, all commits, newest first)
    ✓ Async per-file scanning with a per-directory barrier
    ✓ Access key ID + secret access key pair extraction
    ✓ Live validation through IAM (AccessDenied still means "live")
    ✓ Pluggable validator interface for other providers
    ✓ Serialised report writer (no interleaved output lines)
    ✓ Timeouts on every git command and every validation call
    ✓ Text or structured JSON logging

SECURITY NOTICE:
    Unlike a format-only scanner, this tool DOES authenticate with the
    discovered credentials (a single read-only IAM ListGroups call).
    Only run it against repositories you are authorised to audit.

    Ambiguous authority errors (network failures, throttling, timeouts)
    are treated as "credential is valid". Expect the occasional false
    positive when the network is unreliable.

REQUIREMENTS:
    pip install -e .
    or
    pip install aiofiles boto3 tqdm

USAGE:
    python repo_secret_scanner.py https://github.com/org/repo.git
    python repo_secret_scanner.py /path/to/local/repo --logs-dir reports
    python repo_secret_scanner.py ./repo --log-format json -v

REPORT:
    logs/<repo-name>-result.txt (truncated on every run)

          Branch: main
            Commit: 5f1c...
              Valid secrets found in file config/app.env:
              Access Key: AKIA...
              Secret Access Key: ...

CONFIGURATION:
    Set via environment variables (CLI flags take precedence):
    - MAX_CONCURRENT_FILES: Files scanned in parallel (default: 50)
    - MAX_FILE_SIZE_MB: Skip files larger than this (default: 10)
    - VALIDATION_TIMEOUT_SECONDS: Per-candidate IAM call budget (default: 15)
    - VALIDATION_REGION: Region for the IAM client (default: ap-south-1)
    - LOGS_DIR: Report directory (default: logs)
    - GIT_TIMEOUT_SECONDS: Timeout for git commands (default: 120)
    - CLONE_TIMEOUT_SECONDS: Timeout for git clone (default: 600)
    - SHOW_PROGRESS: Show tqdm progress bars (default: true)
    - KEEP_CLONE: Keep the temporary clone after scanning (default: false)
    - LOG_FORMAT: text|json (default: text)

===================================================================
"""
import argparse
import asyncio
import json
import logging
import os
import re
import shutil
import sys
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from tqdm import tqdm
from typing import List, Optional

# Third-party imports with error handling
try:
    import aiofiles
    import boto3
    from botocore.config import Config
    from botocore.exceptions import BotoCoreError, ClientError
except ImportError as e:
    print(f"ERROR: Missing required dependency: {e}")
    print("Install with: pip install aiofiles boto3 tqdm")
    exit(1)

__version__ = "1.0.0"

# ===================================================================
# CONFIGURATION & CONSTANTS
# ===================================================================

# Environment-driven configuration
MAX_CONCURRENT_FILES = int(os.environ.get("MAX_CONCURRENT_FILES", "50"))
MAX_FILE_SIZE_MB = int(os.environ.get("MAX_FILE_SIZE_MB", "10"))
VALIDATION_TIMEOUT_SECONDS = float(os.environ.get("VALIDATION_TIMEOUT_SECONDS", "15"))
VALIDATION_REGION = os.environ.get("VALIDATION_REGION", "ap-south-1")
LOGS_DIR = Path(os.environ.get("LOGS_DIR", "logs"))
GIT_TIMEOUT_SECONDS = float(os.environ.get("GIT_TIMEOUT_SECONDS", "120"))
CLONE_TIMEOUT_SECONDS = float(os.environ.get("CLONE_TIMEOUT_SECONDS", "600"))
SHOW_PROGRESS = os.environ.get("SHOW_PROGRESS", "true").lower() == "true"
KEEP_CLONE = os.environ.get("KEEP_CLONE", "false").lower() == "true"
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # text|json

# Operational constants
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2

# Directories never descended into
SKIP_DIR_NAMES = {".git"}

# AWS access key ID (AKIA + 16) or the long AWS-prefixed form (AWS + 38),
# whitespace, then a whitespace-delimited 40 character secret access key.
CREDENTIAL_PATTERN = re.compile(
    r'(?<![0-9A-Z])(?P<identifier>AKIA[0-9A-Z]{16}|AWS[0-9A-Z]{38})'
    r'\s+'
    r'(?P<secret>\S{40})(?!\S)',
    re.MULTILINE
)

# IAM error codes that mean the authority does not recognise the key pair
INVALID_CREDENTIAL_ERROR_CODES = frozenset({
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
})

# IAM error codes that mean the key pair authenticated but lacks permission
ACCESS_DENIED_ERROR_CODES = frozenset({
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
})


# ===================================================================
# LOGGING SETUP
# ===================================================================

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    EXTRA_FIELDS = ("repo", "branch", "commit", "path", "finding_count")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add custom fields
        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        return json.dumps(log_data)


def setup_logging(log_format: str = "text") -> logging.Logger:
    """Setup logging with either text or JSON format."""
    logger = logging.getLogger(__name__)
    logger.setLevel(logging.INFO)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    logger.addHandler(handler)
    return logger


logger = setup_logging(LOG_FORMAT)


# ===================================================================
# ERRORS
# ===================================================================

class ScannerError(Exception):
    """Base class for scanner errors."""


class NoMatchError(ScannerError):
    """The validator's matching step failed on a piece of content."""


class TraversalError(ScannerError):
    """A directory could not be listed."""


class AuthorityError(ScannerError):
    """The validation authority gave an ambiguous answer."""


class GitCommandError(ScannerError):
    """A git command failed or timed out."""


class CheckoutError(GitCommandError):
    """Switching the working tree to a branch or commit failed."""


class CloneError(GitCommandError):
    """The source repository could not be cloned."""


# ===================================================================
# DATA MODEL
# ===================================================================

@dataclass(frozen=True)
class CloudCredential:
    """A candidate key pair: access key ID plus secret access key."""
    identifier: str
    secret: str


@dataclass(frozen=True)
class Finding:
    """A validated credential bound to where it was found."""
    credential: CloudCredential
    path: str
    branch: Optional[str] = None
    commit: Optional[str] = None

    def log_fields(self) -> dict:
        """Structured logging extras locating this finding."""
        return {"branch": self.branch, "commit": self.commit, "path": self.path}

    def to_report_block(self) -> str:
        return (
            f"\t\t\tValid secrets found in file {self.path}:\n"
            f"\t\t\tAccess Key: {self.credential.identifier}\n"
            f"\t\t\tSecret Access Key: {self.credential.secret}\n\n"
        )


# ===================================================================
# CREDENTIAL EXTRACTION
# ===================================================================

def match_credentials(content: str) -> List[CloudCredential]:
    """
    Find every syntactically plausible AWS key pair in a piece of text.

    Matches are non-overlapping and reported in order of appearance.
    Repeated pairs are reported once per occurrence. An access key ID
    that is not followed by a 40 character secret is ignored.

    Args:
        content: Raw file content

    Returns:
        List of candidate credentials (possibly empty)
    """
    return [
        CloudCredential(
            identifier=match.group('identifier'),
            secret=match.group('secret')
        )
        for match in CREDENTIAL_PATTERN.finditer(content)
    ]


# ===================================================================
# CREDENTIAL VALIDATION
# ===================================================================

class CredentialValidator(ABC):
    """
    Capability that turns a syntactic match into a confirmed finding.

    Subclasses may override match() with a provider-specific pattern;
    validate() must contact the provider's authority. Implementations
    must not keep per-scan mutable state: one validator instance is
    shared by every concurrent file worker.
    """

    name: str = "base"

    def match(self, content: str) -> List[CloudCredential]:
        """Extract candidate credentials from content."""
        return match_credentials(content)

    @abstractmethod
    async def validate(self, credential: CloudCredential) -> bool:
        """Return True if the authority considers the credential live."""


class AwsIamValidator(CredentialValidator):
    """
    Validates AWS key pairs with a single IAM ListGroups call.

    An AccessDenied answer still proves that the key authenticated, so
    it counts as valid. InvalidClientTokenId and SignatureDoesNotMatch
    count as invalid. Every other failure (network errors, throttling,
    timeouts) counts as valid.
    """

    name = "aws-iam"

    def __init__(
        self,
        region: str = VALIDATION_REGION,
        timeout: float = VALIDATION_TIMEOUT_SECONDS
    ):
        self.region = region
        self.timeout = timeout
        self._client_config = Config(
            region_name=region,
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 1}
        )

    def _create_client(self, credential: CloudCredential):
        session = boto3.Session(
            aws_access_key_id=credential.identifier,
            aws_secret_access_key=credential.secret,
            region_name=self.region
        )
        return session.client("iam", config=self._client_config)

    def _probe(self, credential: CloudCredential) -> bool:
        """
        Blocking IAM call, run in the executor.

        Returns:
            True/False when the authority gave a definite answer

        Raises:
            AuthorityError: when the answer is ambiguous
        """
        try:
            client = self._create_client(credential)
        except (BotoCoreError, ValueError) as e:
            logger.warning(f"Cannot create IAM client for {credential.identifier}: {e}")
            return False

        try:
            client.list_groups(MaxItems=1)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in INVALID_CREDENTIAL_ERROR_CODES:
                return False
            if error_code in ACCESS_DENIED_ERROR_CODES:
                return True
            raise AuthorityError(f"IAM returned {error_code}: {e}") from e
        except BotoCoreError as e:
            raise AuthorityError(f"IAM request failed: {e}") from e

        return True

    async def validate(self, credential: CloudCredential) -> bool:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._probe, credential),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"IAM validation of {credential.identifier} timed out after "
                f"{self.timeout:.0f}s, treating as valid"
            )
            return True
        except AuthorityError as e:
            logger.warning(f"Ambiguous IAM answer for {credential.identifier} ({e}), treating as valid")
            return True


async def parse_credentials(
    content: str,
    validator: CredentialValidator
) -> List[CloudCredential]:
    """
    Extract candidates with the validator and keep the confirmed ones.

    Validation is attempted exactly once per candidate, with no retries.

    Args:
        content: Raw file content
        validator: Capability providing match() and validate()

    Returns:
        Credentials for which validate() returned True

    Raises:
        NoMatchError: if the validator's match() step raised
    """
    try:
        candidates = validator.match(content)
    except Exception as e:
        raise NoMatchError(f"{validator.name} matcher failed: {e}") from e

    confirmed = []
    for candidate in candidates:
        if await validator.validate(candidate):
            confirmed.append(candidate)
        else:
            logger.debug(f"Dropping invalid credential {candidate.identifier}")

    return confirmed


# ===================================================================
# REPORT SINK
# ===================================================================

class ReportSink:
    """
    Hierarchical text report shared by all file workers.

    Every write happens under one lock, and a finding is written as a
    single block, so concurrent workers never interleave lines.
    """

    def __init__(self, stream, path: Optional[Path] = None):
        self._stream = stream
        self._lock = asyncio.Lock()
        self.path = path
        self.finding_count = 0

    @classmethod
    async def open(cls, path: Path) -> "ReportSink":
        """Create (or truncate) the report file at path."""
        stream = await aiofiles.open(path, 'w', encoding='utf-8')
        return cls(stream, path)

    async def _write(self, text: str) -> None:
        await self._stream.write(text)
        await self._stream.flush()

    async def write_branch_header(self, branch: str) -> None:
        async with self._lock:
            await self._write(f"\tBranch: {branch}\n")

    async def write_commit_header(self, commit: str) -> None:
        async with self._lock:
            await self._write(f"\t\tCommit: {commit}\n")

    async def write_finding(self, finding: Finding) -> None:
        async with self._lock:
            await self._write(finding.to_report_block())
            self.finding_count += 1

    async def close(self) -> None:
        await self._stream.close()


# ===================================================================
# DIRECTORY SCANNING
# ===================================================================

@dataclass(frozen=True)
class ScanContext:
    """
    Everything a file worker needs, shared read-only during a scan.

    A context per commit is derived with dataclasses.replace(); workers
    never modify the one they were given.
    """
    sink: ReportSink
    validator: CredentialValidator
    root: Path
    semaphore: asyncio.Semaphore = field(
        default_factory=lambda: asyncio.Semaphore(MAX_CONCURRENT_FILES)
    )
    branch: Optional[str] = None
    commit: Optional[str] = None

    def relative(self, file_path: Path) -> str:
        try:
            return file_path.relative_to(self.root).as_posix()
        except ValueError:
            return str(file_path)


def _list_dir(path: Path) -> List[Path]:
    try:
        return sorted(path.iterdir())
    except OSError as e:
        raise TraversalError(f"Cannot list directory {path}: {e}") from e


async def _read_text(file_path: Path) -> str:
    async with aiofiles.open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
        return await f.read()


async def scan_file(file_path: Path, context: ScanContext) -> int:
    """
    Scan a single file and write its confirmed findings to the sink.

    Read failures and matcher failures are logged and reported as zero
    findings; they never propagate to sibling workers.

    Args:
        file_path: Absolute path to file
        context: Shared scan context

    Returns:
        Number of findings written
    """
    relative_path = context.relative(file_path)

    async with context.semaphore:
        try:
            # Check file size BEFORE reading
            file_size = file_path.stat().st_size
            if file_size > MAX_FILE_SIZE_BYTES:
                logger.debug(f"Skipping large file: {relative_path} ({file_size} bytes)")
                return 0

            content = await _read_text(file_path)
        except OSError as e:
            logger.warning(f"Failed to read {relative_path}: {e}")
            return 0

        if not content:
            return 0

        try:
            credentials = await parse_credentials(content, context.validator)
        except NoMatchError as e:
            logger.warning(f"Skipping {relative_path}: {e}")
            return 0

    for credential in credentials:
        finding = Finding(
            credential=credential,
            path=relative_path,
            branch=context.branch,
            commit=context.commit
        )
        await context.sink.write_finding(finding)
        logger.info(
            f"Valid credential {credential.identifier} found in {finding.path}",
            extra=finding.log_fields()
        )

    return len(credentials)


async def scan_dir(path: Path, context: ScanContext) -> int:
    """
    Recursively scan a directory tree.

    Subdirectories are scanned one after another in the calling
    coroutine; files become one task each. All file tasks started for
    this directory are awaited before returning, so the caller sees a
    complete subtree.

    A subdirectory that cannot be listed is logged and skipped; its
    siblings are still scanned.

    Args:
        path: Directory to scan
        context: Shared scan context

    Returns:
        Number of findings written for the subtree

    Raises:
        TraversalError: if path itself cannot be listed
    """
    entries = _list_dir(path)

    found = 0
    file_tasks = []
    for entry in entries:
        if entry.is_symlink():
            logger.debug(f"Skipping symlink: {context.relative(entry)}")
            continue

        if entry.is_dir():
            if entry.name in SKIP_DIR_NAMES:
                continue
            try:
                found += await scan_dir(entry, context)
            except TraversalError as e:
                logger.warning(f"Skipping subtree: {e}")
        elif entry.is_file():
            file_tasks.append(asyncio.create_task(scan_file(entry, context)))

    results = await asyncio.gather(*file_tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            logger.error(f"Scan task failed in {context.relative(path)}: {result!r}")
        else:
            found += result

    return found


# ===================================================================
# GIT OPERATIONS
# ===================================================================

async def run_git(
    *args: str,
    cwd: Optional[Path] = None,
    timeout: float = GIT_TIMEOUT_SECONDS
) -> str:
    """
    Run a git command and return its stdout.

    Raises:
        GitCommandError: on a non-zero exit, a timeout or a missing git binary
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
    except OSError as e:
        raise GitCommandError(f"Cannot run git: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise GitCommandError(f"git {args[0]} timed out after {timeout:.0f}s")

    if proc.returncode != 0:
        error_msg = stderr.decode('utf-8', errors='ignore').strip()[:200]
        raise GitCommandError(f"git {' '.join(args)} failed: {error_msg}")

    return stdout.decode('utf-8', errors='ignore')


class GitRepository:
    """
    A local clone and the single owner of its checked-out revision.

    Only the revision walker holds a reference to this object; file
    workers get a ScanContext, which does not carry one. Checkouts are
    serialised through a lock.
    """

    LOCAL_PREFIX = "refs/heads/"
    REMOTE_PREFIX = "refs/remotes/origin/"

    def __init__(self, path: Path):
        self.path = Path(path)
        self._checkout_lock = asyncio.Lock()

    @classmethod
    async def clone(cls, source: str, dest: Path) -> "GitRepository":
        """
        Clone source into dest, retrying transient failures.

        Raises:
            CloneError: if every attempt failed
        """
        last_error = None
        for attempt in range(RETRY_ATTEMPTS):
            if dest.exists():
                shutil.rmtree(dest, ignore_errors=True)

            logger.info(f"Cloning {source} (attempt {attempt + 1}/{RETRY_ATTEMPTS})")
            try:
                await run_git("clone", "--quiet", source, str(dest), timeout=CLONE_TIMEOUT_SECONDS)
                logger.info(f"✓ Successfully cloned {source}")
                return cls(dest)
            except GitCommandError as e:
                last_error = e
                logger.warning(f"Clone failed for {source}: {e}")

            if attempt < RETRY_ATTEMPTS - 1:
                await asyncio.sleep(RETRY_DELAY_SECONDS * (attempt + 1))

        raise CloneError(f"Failed to clone {source} after {RETRY_ATTEMPTS} attempts: {last_error}")

    async def list_branches(self) -> List[str]:
        """Local branches, then origin's remote branches not already local."""
        output = await run_git(
            "for-each-ref", "--format=%(refname)", self.LOCAL_PREFIX, self.REMOTE_PREFIX,
            cwd=self.path
        )

        branches = []
        for ref in output.splitlines():
            ref = ref.strip()
            if ref.startswith(self.LOCAL_PREFIX):
                name = ref[len(self.LOCAL_PREFIX):]
            elif ref.startswith(self.REMOTE_PREFIX):
                name = ref[len(self.REMOTE_PREFIX):]
            else:
                continue
            if name and name != "HEAD" and name not in branches:
                branches.append(name)
        return branches

    async def list_commits(self) -> List[str]:
        """Commits reachable from HEAD, newest first."""
        output = await run_git("rev-list", "HEAD", "--", cwd=self.path)
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def checkout(self, ref: str) -> None:
        """Check out a branch or commit. The trailing -- stops git reading ref as a path."""
        async with self._checkout_lock:
            try:
                await run_git("checkout", "--quiet", "--force", ref, "--", cwd=self.path)
            except GitCommandError as e:
                raise CheckoutError(f"Cannot switch to {ref}: {e}") from e

    async def checkout_previous(self) -> None:
        """Return to the previously checked-out revision (git checkout -)."""
        async with self._checkout_lock:
            try:
                await run_git("checkout", "--quiet", "--force", "-", "--", cwd=self.path)
            except GitCommandError as e:
                raise CheckoutError(f"Cannot switch back to previous HEAD: {e}") from e


# ===================================================================
# HISTORY TRAVERSAL
# ===================================================================

class RepoScanner:
    """
    Walks branches and commits, scanning the working tree at each commit.

    For every branch: check it out, then for every commit (newest first)
    check the commit out, scan the tree, and switch back to the branch
    tip. A failed branch checkout skips that branch. A failed commit
    checkout or restore abandons the rest of the branch. Either way the
    walk continues with the next branch.
    """

    def __init__(
        self,
        repository: GitRepository,
        validator: CredentialValidator,
        sink: ReportSink,
        max_concurrent_files: int = MAX_CONCURRENT_FILES,
        show_progress: bool = SHOW_PROGRESS
    ):
        if max_concurrent_files < 1:
            raise ValueError(f"max_concurrent_files must be at least 1, got {max_concurrent_files}")

        self.repository = repository
        self.validator = validator
        self.sink = sink
        self.max_concurrent_files = max_concurrent_files
        self.show_progress = show_progress

    async def scan_repo(self) -> int:
        """
        Scan every branch of the repository.

        Returns:
            Number of findings written during this walk
        """
        start_count = self.sink.finding_count
        context = ScanContext(
            sink=self.sink,
            validator=self.validator,
            root=self.repository.path,
            semaphore=asyncio.Semaphore(self.max_concurrent_files)
        )

        try:
            branches = await self.repository.list_branches()
        except GitCommandError as e:
            logger.error(f"Error listing branches: {e}")
            return 0

        logger.info(f"Found {len(branches)} branches to scan")
        for branch in branches:
            await self.scan_branch(branch, context)

        return self.sink.finding_count - start_count

    async def scan_branch(self, branch: str, context: ScanContext) -> None:
        try:
            await self.repository.checkout(branch)
        except CheckoutError as e:
            logger.error(f"Error scanning branch {branch}: {e}", extra={"branch": branch})
            return

        logger.info(f"Branch: {branch}", extra={"branch": branch})
        await self.sink.write_branch_header(branch)

        try:
            commits = await self.repository.list_commits()
        except GitCommandError as e:
            logger.error(f"Error listing commits on {branch}: {e}", extra={"branch": branch})
            return

        branch_context = replace(context, branch=branch)
        with tqdm(
            total=len(commits),
            desc=f"Scanning {branch}",
            unit="commit",
            disable=not self.show_progress
        ) as pbar:
            for commit in commits:
                try:
                    await self.scan_commit(commit, branch_context)
                except CheckoutError as e:
                    logger.error(
                        f"Abandoning branch {branch}: {e}",
                        extra={"branch": branch, "commit": commit}
                    )
                    return
                finally:
                    pbar.update(1)

    async def scan_commit(self, commit: str, context: ScanContext) -> None:
        """
        Scan the tree at one commit, then restore the branch tip.

        Raises:
            CheckoutError: if the commit cannot be checked out or the
                branch tip cannot be restored
        """
        await self.repository.checkout(commit)

        logger.info(f"Commit: {commit}", extra={"branch": context.branch, "commit": commit})
        await self.sink.write_commit_header(commit)

        try:
            await scan_dir(self.repository.path, replace(context, commit=commit))
        except TraversalError as e:
            logger.error(f"Error scanning directory at {commit}: {e}", extra={"commit": commit})
        finally:
            await self.repository.checkout_previous()


# ===================================================================
# MAIN ORCHESTRATION
# ===================================================================

def get_repo_name(repo_source: str) -> str:
    """
    Derive the report name from a repository path or URL.

    Args:
        repo_source: Local path, https URL or scp-style git URL

    Returns:
        Last path component without a trailing .git
    """
    local_path = Path(repo_source).expanduser()
    if local_path.exists():
        name = local_path.resolve().name
    else:
        name = re.split(r'[/\\:]', repo_source.rstrip('/\\'))[-1]

    if name.endswith(".git"):
        name = name[:-4]
    return name or "repository"


async def scan_repository_async(
    repo_source: str,
    logs_dir: Path = LOGS_DIR,
    validator: Optional[CredentialValidator] = None,
    max_concurrent_files: int = MAX_CONCURRENT_FILES,
    keep_clone: bool = KEEP_CLONE,
    show_progress: bool = SHOW_PROGRESS
) -> int:
    """
    Clone a repository, walk its history and write the report.

    Args:
        repo_source: Path or URL passed to git clone
        logs_dir: Directory receiving <repo-name>-result.txt
        validator: Validation capability (defaults to AwsIamValidator)
        max_concurrent_files: Cap on files scanned in parallel
        keep_clone: Leave the temporary clone on disk
        show_progress: Show tqdm progress bars

    Returns:
        Number of confirmed findings

    Raises:
        CloneError: if the repository cannot be cloned
        OSError: if the report file cannot be created
    """
    repo_name = get_repo_name(repo_source)
    validator = validator or AwsIamValidator()
    clone_base = Path(tempfile.mkdtemp(prefix=f"reposcan_{repo_name}_"))

    try:
        repository = await GitRepository.clone(repo_source, clone_base / repo_name)

        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Error creating folder {logs_dir}: {e}")

        report_path = logs_dir / f"{repo_name}-result.txt"
        sink = await ReportSink.open(report_path)
        try:
            scanner = RepoScanner(
                repository,
                validator,
                sink,
                max_concurrent_files=max_concurrent_files,
                show_progress=show_progress
            )
            found = await scanner.scan_repo()
        finally:
            await sink.close()

        logger.info(
            f"Scan complete. Found {found} valid credentials",
            extra={"repo": repo_name, "finding_count": found}
        )
        logger.info(f"Report written to {sink.path}")
        return found

    finally:
        if keep_clone:
            logger.info(f"Keeping clone directory: {clone_base}")
        else:
            logger.info(f"Cleaning up clone directory: {clone_base}")
            shutil.rmtree(clone_base, ignore_errors=True)


# ===================================================================
# COMMAND LINE INTERFACE
# ===================================================================

def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command-line arguments and display help information."""
    parser = argparse.ArgumentParser(
        description='Scan every branch and commit of a git repository for live AWS credentials',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
ENVIRONMENT VARIABLES (Optional):
  MAX_CONCURRENT_FILES        Files scanned in parallel (default: 50)
  MAX_FILE_SIZE_MB            Skip files larger than this in MB (default: 10)
  VALIDATION_TIMEOUT_SECONDS  Timeout per IAM validation call (default: 15)
  VALIDATION_REGION           Region for the IAM client (default: ap-south-1)
  LOGS_DIR                    Report directory (default: logs)
  SHOW_PROGRESS               Show progress bars (default: true)

USAGE EXAMPLES:
  python repo_secret_scanner.py https://github.com/org/repo.git
  python repo_secret_scanner.py ./local-repo --logs-dir reports

SECURITY NOTICE:
  Candidates are validated by authenticating against AWS IAM.
  Only scan repositories you are authorised to audit.

EXIT CODES:
  0   Success (also after a usage error; nothing is scanned)
  1   Error (clone failed, report file not writable, etc.)
  130 Interrupted by user (Ctrl+C)
        '''
    )

    parser.add_argument(
        'repository',
        help='Path or URL of the git repository to scan'
    )

    parser.add_argument(
        '--logs-dir',
        type=Path,
        default=LOGS_DIR,
        help=f'Directory for the result file (default: {LOGS_DIR})'
    )

    parser.add_argument(
        '--region',
        type=str,
        default=VALIDATION_REGION,
        help=f'AWS region used for IAM validation (default: {VALIDATION_REGION})'
    )

    parser.add_argument(
        '--max-concurrent-files',
        type=positive_int,
        default=MAX_CONCURRENT_FILES,
        help=f'Files scanned in parallel (default: {MAX_CONCURRENT_FILES})'
    )

    parser.add_argument(
        '--validation-timeout',
        type=float,
        default=VALIDATION_TIMEOUT_SECONDS,
        help=f'Seconds allowed per IAM validation call (default: {VALIDATION_TIMEOUT_SECONDS:.0f})'
    )

    parser.add_argument(
        '--keep-clone',
        action='store_true',
        default=KEEP_CLONE,
        help='Keep the temporary clone after scanning'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        choices=['text', 'json'],
        default=LOG_FORMAT,
        help=f'Logging format (default: {LOG_FORMAT})'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose debug logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    args = parser.parse_args(argv)

    # The default comes from MAX_CONCURRENT_FILES and bypasses the type check
    if args.max_concurrent_files < 1:
        parser.error(f"argument --max-concurrent-files: must be at least 1, got {args.max_concurrent_files}")

    return args


# ===================================================================
# MAIN ENTRY POINT
# ===================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with validation and error handling."""

    try:
        args = parse_arguments(argv)
    except SystemExit:
        # argparse has printed usage or help; nothing is scanned
        return 0

    setup_logging(args.log_format)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    logger.info("=" * 70)
    logger.info("GIT HISTORY AWS CREDENTIAL SCANNER")
    logger.info("=" * 70)
    logger.info(f"Repository: {args.repository}")
    logger.info(f"Report directory: {args.logs_dir}")
    logger.info(f"Validation region: {args.region}")
    logger.info(f"Max concurrent files: {args.max_concurrent_files}")
    logger.info("=" * 70)

    validator = AwsIamValidator(region=args.region, timeout=args.validation_timeout)

    try:
        asyncio.run(scan_repository_async(
            args.repository,
            logs_dir=args.logs_dir,
            validator=validator,
            max_concurrent_files=args.max_concurrent_files,
            keep_clone=args.keep_clone
        ))
    except CloneError as e:
        logger.error(f"Error cloning the repository: {e}")
        return 1
    except OSError as e:
        logger.error(f"Error creating report file: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Scan interrupted by user")
        return 130

    logger.info("=" * 70)
    logger.info("SCAN COMPLETED SUCCESSFULLY")
    logger.info("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())
