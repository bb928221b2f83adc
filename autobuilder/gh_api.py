import asyncio
import logging
import os
import pathlib
import stat
import subprocess
import tempfile
import textwrap
import time
from typing import Callable, List, Optional
import requests
from .models import ArtifactSet, PublishResult
from .settings import Settings

logger = logging.getLogger(__name__)

MIT_LICENSE = """MIT License

Copyright (c) %YEAR% %AUTHOR%

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.
"""

# Git asks twice: once for the username, once for the password (the token).
ASKPASS_SCRIPT = textwrap.dedent("""\
    #!/usr/bin/env sh
    case "$1" in
      Username*) printf '%s' 'x-access-token' ;;
      *) printf '%s' "$AUTOBUILDER_GIT_TOKEN" ;;
    esac
""")

COMMIT_MESSAGE = "Initial auto-generated commit"
HTTP_TIMEOUT = 30

class PublishError(Exception):
    pass

class RepositoryCreateError(PublishError):
    pass

class PushError(PublishError):
    pass

GitRunner = Callable[..., None]

def run_git(cmd: List[str], cwd=None, env=None) -> None:
    logger.info("RUN: %s", " ".join(cmd))
    proc = subprocess.run(cmd, cwd=cwd, env=env, capture_output=True, text=True)
    if proc.returncode != 0:
        raise PushError(f"{' '.join(cmd[:3])} failed ({proc.returncode}): {proc.stderr.strip()}")

def _github_session(token: str) -> requests.Session:
    s = requests.Session()
    s.headers.update({
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    })
    if token:
        s.headers["Authorization"] = f"Bearer {token}"
    return s

def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return body.get("message", "") or str(body)[:200]
    return str(body)[:200]

def write_tree(root: pathlib.Path, artifacts: ArtifactSet, author: str) -> List[str]:
    """Write artifact files, README.md and LICENSE under ``root``; return the written paths."""
    base = root.resolve()
    written = []
    for f in artifacts.files:
        rel = pathlib.PurePosixPath(f.path.replace("\\", "/"))
        if rel.is_absolute() or not rel.parts or rel.parts[0] == ".git":
            raise PublishError(f"Refusing to write artifact path {f.path!r}")
        target = (base / rel).resolve()
        if base not in target.parents:
            raise PublishError(f"Artifact path escapes the working tree: {f.path!r}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f.content, encoding="utf-8")
        written.append(str(rel))

    (base / "README.md").write_text(artifacts.readme or "# Auto-generated", encoding="utf-8")
    (base / "LICENSE").write_text(
        MIT_LICENSE.replace("%YEAR%", time.strftime("%Y")).replace("%AUTHOR%", author),
        encoding="utf-8",
    )
    return written + ["README.md", "LICENSE"]

class RepositoryPublisher:
    """Creates a public GitHub repository and pushes one commit holding an artifact set."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None, runner: GitRunner = run_git):
        self.settings = settings
        self.session = session or _github_session(settings.GITHUB_TOKEN)
        self.runner = runner
        self.api = settings.GITHUB_API_BASE.rstrip("/")

    async def publish(self, repo_name: str, artifacts: ArtifactSet) -> PublishResult:
        return await asyncio.to_thread(self._publish, repo_name, artifacts)

    def _publish(self, repo_name: str, artifacts: ArtifactSet) -> PublishResult:
        repo = self._create_repository(repo_name)
        owner, name = repo["owner"]["login"], repo["name"]
        logger.info("[PUBLISH] Created %s/%s", owner, name)

        try:
            with tempfile.TemporaryDirectory(prefix="autobuilder-publish-") as tmp:
                tree = pathlib.Path(tmp) / "tree"
                tree.mkdir()
                files = write_tree(tree, artifacts, self.settings.GIT_USER_NAME)
                logger.info("[PUBLISH] Wrote %d file(s) for %s", len(files), name)
                self._commit(tree)
                self._push(tree, repo["clone_url"], pathlib.Path(tmp))
        except (PublishError, OSError) as e:
            self._discard_orphan(owner, name)
            if isinstance(e, PublishError):
                raise
            raise PushError(f"Could not prepare working tree for {name}: {e}") from e

        sha = self._remote_head(owner, name)
        logger.info("[PUBLISH] %s/%s at %s", owner, name, sha)
        return PublishResult(repo_url=repo["html_url"], commit_sha=sha)

    def _create_repository(self, repo_name: str) -> dict:
        payload = {
            "name": repo_name,
            "private": False,
            "description": "Auto-generated repo from autobuilder",
        }
        try:
            resp = self.session.post(f"{self.api}/user/repos", json=payload, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise RepositoryCreateError(f"Repository creation request failed: {e}") from e
        if not 200 <= resp.status_code < 300:
            raise RepositoryCreateError(
                f"GitHub rejected repository {repo_name!r}: {resp.status_code} {_error_message(resp)}"
            )
        return resp.json()

    def _commit(self, tree: pathlib.Path) -> None:
        branch = self.settings.DEFAULT_BRANCH
        self.runner(["git", "init", "-b", branch], cwd=tree)
        self.runner(["git", "config", "user.name", self.settings.GIT_USER_NAME], cwd=tree)
        self.runner(["git", "config", "user.email", self.settings.GIT_USER_EMAIL], cwd=tree)
        self.runner(["git", "add", "-A"], cwd=tree)
        self.runner(["git", "-c", "commit.gpgsign=false", "commit", "-m", COMMIT_MESSAGE], cwd=tree)

    def _push(self, tree: pathlib.Path, clone_url: str, scratch: pathlib.Path) -> None:
        """Push using a temporary GIT_ASKPASS helper kept outside the working tree."""
        askpass_path = scratch / "git_askpass.sh"
        askpass_path.write_text(ASKPASS_SCRIPT, encoding="utf-8")
        st = os.stat(askpass_path)
        os.chmod(askpass_path, st.st_mode | stat.S_IEXEC)

        env = os.environ.copy()
        env["GIT_ASKPASS"] = str(askpass_path)
        env["GIT_TERMINAL_PROMPT"] = "0"
        env["AUTOBUILDER_GIT_TOKEN"] = self.settings.GITHUB_TOKEN

        branch = self.settings.DEFAULT_BRANCH
        self.runner(["git", "remote", "add", "origin", clone_url], cwd=tree)
        self.runner(["git", "push", "-u", "origin", branch], cwd=tree, env=env)

    def _remote_head(self, owner: str, name: str) -> str:
        url = f"{self.api}/repos/{owner}/{name}/commits/heads/{self.settings.DEFAULT_BRANCH}"
        try:
            resp = self.session.get(url, timeout=HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise PublishError(f"Could not resolve pushed commit for {owner}/{name}: {e}") from e
        if resp.status_code != 200:
            raise PublishError(
                f"Could not resolve pushed commit for {owner}/{name}: {resp.status_code} {_error_message(resp)}"
            )
        return resp.json()["sha"]

    def _discard_orphan(self, owner: str, name: str) -> None:
        if not self.settings.DELETE_ORPHAN_REPOS:
            logger.warning("[PUBLISH] Leaving empty repository %s/%s in place", owner, name)
            return
        try:
            resp = self.session.delete(f"{self.api}/repos/{owner}/{name}", timeout=HTTP_TIMEOUT)
        except requests.RequestException:
            logger.exception("[PUBLISH] Could not delete orphan repository %s/%s", owner, name)
            return
        if resp.status_code == 204:
            logger.info("[PUBLISH] Deleted orphan repository %s/%s", owner, name)
        else:
            logger.error(
                "[PUBLISH] Orphan repository %s/%s not deleted: %s %s",
                owner, name, resp.status_code, _error_message(resp),
            )
