"""
TruthForge — Security Probes

Seven lightweight probes, each worth a fixed number of points:

  1. FileSystemProbe        (30) — sensitive files, world-writable files, git remote
  2. EnvironmentProbe       (20) — credentials in .env, .env ignored by git
  3. DependencyAuditProbe   (25) — npm audit / npm outdated / pip-audit
  4. WebServerProbe         (30) — security headers, banner disclosure, HTTPS
  5. InputValidationProbe   (20) — concatenated SQL, validation libraries
  6. AuthenticationProbe    (25) — weak secrets, password hashing
  7. CryptographyProbe      (15) — weak algorithms, weak randomness

These are heuristics. They flag likely problems for a human to look at;
they are not a security scanner.
"""

from __future__ import annotations

import asyncio
import re
import stat
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx
import orjson
import structlog

from truthforge.clients.process import run_command
from truthforge.systems.evidence.scanning import iter_files, read_text, relative
from truthforge.systems.evidence.types import SecurityTestResult, SecurityVulnerability

logger = structlog.get_logger().bind(system="evidence", component="security")

# The engine's own sources mention every pattern it looks for
_OWN_SOURCE = Path(__file__).resolve().parents[3]

_TEST_FILE_RE = re.compile(r"(^test_.*\.py$|.*_test\.py$|.*\.(test|spec)\.[jt]s$)")


def _vuln(severity: str, type_: str, description: str, impact: str, **extra: Any) -> SecurityVulnerability:
    return SecurityVulnerability(
        severity=severity, type=type_, description=description, impact=impact, **extra
    )


# ─── Strategy ABC ────────────────────────────────────────────────


class SecurityProbe(ABC):
    """
    One security check. ``run()`` may raise; the validator records a
    raising probe as an error test worth 0 of 10.
    """

    name: str = ""
    max_score: int = 0

    def __init__(self, root: Path) -> None:
        self._root = root

    def new_result(self) -> SecurityTestResult:
        return SecurityTestResult(name=self.name, max_score=self.max_score)

    @abstractmethod
    async def run(self) -> SecurityTestResult:
        ...


class ScanningProbe(SecurityProbe):
    """Probe whose work is blocking file-system access; runs in a worker thread."""

    def __init__(
        self,
        root: Path,
        excluded_dirs: list[str] | None = None,
        max_files: int = 20,
    ) -> None:
        super().__init__(root)
        self._excluded = excluded_dirs or []
        self._max_files = max_files

    async def run(self) -> SecurityTestResult:
        return await asyncio.to_thread(self.run_sync)

    @abstractmethod
    def run_sync(self) -> SecurityTestResult:
        ...

    def code_files(self, patterns: list[str], limit: int | None = None) -> list[Path]:
        """Project source files, excluding test files and the engine's own package."""
        files: list[Path] = []
        for path in iter_files(self._root, patterns, self._excluded):
            if _TEST_FILE_RE.match(path.name) or path.resolve().is_relative_to(_OWN_SOURCE):
                continue
            files.append(path)
            if len(files) >= (limit or self._max_files):
                break
        return files


# ─── File System ─────────────────────────────────────────────────


class FileSystemProbe(ScanningProbe):
    name = "File System Security"
    max_score = 30

    def __init__(
        self,
        root: Path,
        sensitive_patterns: list[str],
        excluded_dirs: list[str] | None = None,
        max_files: int = 20,
    ) -> None:
        super().__init__(root, excluded_dirs, max_files)
        self._sensitive = sensitive_patterns

    def run_sync(self) -> SecurityTestResult:
        result = self.new_result()

        sensitive = [relative(p, self._root) for p in iter_files(self._root, self._sensitive, self._excluded)]
        if sensitive:
            result.vulnerabilities.append(_vuln(
                "medium", "sensitive_files_exposed",
                "Sensitive files found in repository",
                "Potential credential exposure",
                files=sensitive,
            ))
            result.recommendations.append(
                "Move sensitive files outside repository or add to .gitignore"
            )
        else:
            result.score += 10

        writable = self._world_writable()
        if writable:
            result.vulnerabilities.append(_vuln(
                "low", "world_writable_files",
                "World-writable files found",
                "Potential unauthorized file modification",
                files=writable,
            ))
            result.recommendations.append("Review and fix file permissions")
        else:
            result.score += 10

        git_config = self._root / ".git" / "config"
        if git_config.is_file():
            try:
                content = read_text(git_config)
            except OSError as exc:
                logger.debug("git_config_unreadable", error=str(exc))
            else:
                if "http://" in content and "https://" not in content:
                    result.vulnerabilities.append(_vuln(
                        "low", "insecure_git_remote",
                        "Git remote uses HTTP instead of HTTPS",
                        "Potential man-in-the-middle attacks",
                    ))
                    result.recommendations.append("Use HTTPS for git remotes")
                else:
                    result.score += 10

        return result

    def _world_writable(self) -> list[str]:
        found: list[str] = []
        for path in iter_files(self._root, ["*"], self._excluded):
            try:
                mode = path.lstat().st_mode
            except OSError:
                continue
            if stat.S_ISREG(mode) and mode & stat.S_IWOTH:
                found.append(relative(path, self._root))
        return found


# ─── Environment Variables ───────────────────────────────────────


_ENV_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"password\s*=", re.I), "password in .env"),
    (re.compile(r"secret\s*=", re.I), "secret in .env"),
    (re.compile(r"key\s*=[^=]*$", re.I), "key in .env"),
    (re.compile(r"token\s*=", re.I), "token in .env"),
    (re.compile(r'=\s*""'), "empty credentials"),
)


class EnvironmentProbe(ScanningProbe):
    name = "Environment Variables Security"
    max_score = 20

    def run_sync(self) -> SecurityTestResult:
        result = self.new_result()
        env_file = self._root / ".env"

        if not env_file.exists():
            result.score += 10
            return result

        issues: list[dict[str, str]] = []
        for line in read_text(env_file).splitlines():
            if line.startswith("#"):
                continue
            for pattern, issue in _ENV_PATTERNS:
                if pattern.search(line):
                    # First 50 chars only
                    issues.append({"line": line[:50], "issue": issue})

        if issues:
            result.vulnerabilities.append(_vuln(
                "high", "sensitive_env_vars",
                "Potentially sensitive environment variables found",
                "Credential exposure if .env file is committed",
                details=issues,
            ))
            result.recommendations.append("Ensure .env files are in .gitignore")
            result.recommendations.append("Use environment-specific credential management")
        else:
            result.score += 15

        gitignore = self._root / ".gitignore"
        if gitignore.exists():
            if ".env" in read_text(gitignore):
                result.score += 5
            else:
                result.vulnerabilities.append(_vuln(
                    "critical", "env_not_ignored",
                    ".env file exists but not in .gitignore",
                    "Environment variables may be committed to repository",
                ))
                result.recommendations.append("Add .env* to .gitignore immediately")

        return result


# ─── Dependency Audit ────────────────────────────────────────────


class DependencyAuditProbe(SecurityProbe):
    name = "Dependency Vulnerabilities"
    max_score = 25

    def __init__(self, root: Path, timeout_s: float = 30.0) -> None:
        super().__init__(root)
        self._timeout_s = timeout_s

    async def run(self) -> SecurityTestResult:
        result = self.new_result()

        if (self._root / "package.json").exists():
            await self._npm_audit(result)
            await self._npm_outdated(result)

        if any((self._root / f).exists() for f in ("requirements.txt", "Pipfile", "pyproject.toml")):
            await self._pip_audit(result)

        return result

    async def _npm_audit(self, result: SecurityTestResult) -> None:
        # npm audit exits non-zero when it finds something; the JSON is still on stdout
        outcome = await run_command("npm", "audit", "--json", cwd=self._root, timeout_s=self._timeout_s)
        audit = _parse_json(outcome.stdout) if outcome is not None and not outcome.timed_out else None
        if not isinstance(audit, dict):
            result.recommendations.append("Run npm audit manually to check for vulnerabilities")
            return

        vulns = audit.get("vulnerabilities")
        if vulns is None:
            return
        count = len(vulns)
        if count:
            result.vulnerabilities.append(_vuln(
                "medium", "npm_vulnerabilities",
                f"{count} npm package vulnerabilities found",
                "Potential security vulnerabilities in dependencies",
                packages=sorted(vulns)[:20],
            ))
            result.recommendations.append('Run "npm audit fix" to resolve vulnerabilities')
            result.score += max(0, 15 - count * 2)
        else:
            result.score += 15

    async def _npm_outdated(self, result: SecurityTestResult) -> None:
        outcome = await run_command("npm", "outdated", "--json", cwd=self._root, timeout_s=self._timeout_s)
        if outcome is None or outcome.timed_out:
            return
        if not outcome.stdout.strip():
            result.score += 10
            return
        outdated = _parse_json(outcome.stdout)
        if not isinstance(outdated, dict):
            return
        if len(outdated) > 5:
            result.vulnerabilities.append(_vuln(
                "low", "outdated_dependencies",
                f"{len(outdated)} outdated packages found",
                "Missing security patches and bug fixes",
            ))
            result.recommendations.append("Update outdated dependencies regularly")
            result.score += 5
        else:
            result.score += 10

    async def _pip_audit(self, result: SecurityTestResult) -> None:
        if (self._root / "requirements.txt").exists():
            args = ("pip-audit", "-f", "json", "-r", "requirements.txt")
        else:
            args = ("pip-audit", "-f", "json", ".")
        outcome = await run_command(*args, cwd=self._root, timeout_s=self._timeout_s)
        if outcome is None or outcome.timed_out:
            return

        report = _parse_json(outcome.stdout)
        if not isinstance(report, dict):
            logger.debug("pip_audit_unparsable", returncode=outcome.returncode)
            return

        vulnerable = [d for d in report.get("dependencies", []) if d.get("vulns")]
        if vulnerable:
            result.vulnerabilities.append(_vuln(
                "medium", "python_vulnerabilities",
                f"{len(vulnerable)} Python packages with known vulnerabilities",
                "Potential security vulnerabilities in Python dependencies",
                packages=[d.get("name") for d in vulnerable],
            ))
            result.recommendations.append('Run "pip-audit" and update vulnerable packages')
        else:
            result.score += 5


def _parse_json(text: str) -> Any:
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return None


# ─── Web Server ──────────────────────────────────────────────────


_SECURITY_HEADERS: tuple[str, ...] = (
    "x-frame-options",
    "x-content-type-options",
    "x-xss-protection",
    "strict-transport-security",
    "content-security-policy",
)

_HTTPS_CHECKED_PORTS = frozenset({80, 3000, 8000, 8080})


class WebServerProbe(SecurityProbe):
    name = "Web Server Security"
    max_score = 30

    def __init__(
        self,
        root: Path,
        ports: list[int],
        timeout_s: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(root)
        self._ports = ports
        self._timeout_s = timeout_s
        self._transport = transport

    async def run(self) -> SecurityTestResult:
        result = self.new_result()

        async with httpx.AsyncClient(
            timeout=self._timeout_s, transport=self._transport, verify=False
        ) as client:
            running: list[tuple[int, httpx.Headers]] = []
            for port in self._ports:
                try:
                    resp = await client.head(f"http://localhost:{port}")
                except httpx.HTTPError:
                    continue
                running.append((port, resp.headers))

            if not running:
                result.score += 10
                return result

            for port, headers in running:
                await self._check_port(client, port, headers, result)

        # Capped at max_score
        result.score = min(result.score, self.max_score)
        return result

    async def _check_port(
        self,
        client: httpx.AsyncClient,
        port: int,
        headers: httpx.Headers,
        result: SecurityTestResult,
    ) -> None:
        missing = [h for h in _SECURITY_HEADERS if h not in headers]
        if missing:
            result.vulnerabilities.append(_vuln(
                "medium", "missing_security_headers",
                f"Missing security headers on port {port}",
                "Potential XSS, clickjacking, and other client-side attacks",
                details=missing,
            ))
            result.recommendations.append(f"Add security headers: {', '.join(missing)}")
        else:
            result.score += 5

        if "server" in headers or "x-powered-by" in headers:
            result.vulnerabilities.append(_vuln(
                "low", "server_info_disclosure",
                f"Server information disclosed on port {port}",
                "Information leakage that could help attackers",
            ))
            result.recommendations.append("Hide server version information")
        else:
            result.score += 3

        if port in _HTTPS_CHECKED_PORTS:
            try:
                await client.get(f"https://localhost:{port + 443}")
                result.score += 5
            except httpx.HTTPError:
                result.vulnerabilities.append(_vuln(
                    "medium", "no_https",
                    f"No HTTPS available for port {port}",
                    "Data transmitted in plain text",
                ))
                result.recommendations.append("Enable HTTPS/TLS encryption")


# ─── Input Validation ────────────────────────────────────────────


# A statement followed on the same line by concatenation or interpolation
_SQL_INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"{stmt}.*(\+\s*\w|\$\{{|\{{\w+\}}|%\s*\()", re.I)
    for stmt in (
        r"SELECT.*FROM.*WHERE",
        r"INSERT.*INTO.*VALUES",
        r"UPDATE.*SET.*WHERE",
        r"DELETE.*FROM.*WHERE",
    )
)

_VALIDATION_MARKERS: tuple[str, ...] = (
    "express-validator", "joi", "yup", "validate", "sanitize", "pydantic", "marshmallow",
)


class InputValidationProbe(ScanningProbe):
    name = "Input Validation"
    max_score = 20

    def run_sync(self) -> SecurityTestResult:
        result = self.new_result()
        injections = 0
        has_validation = False

        for path in self.code_files(["*.js", "*.ts", "*.py", "*.php"]):
            try:
                content = read_text(path)
            except OSError:
                continue
            injections += sum(1 for p in _SQL_INJECTION_PATTERNS if p.search(content))
            if any(marker in content for marker in _VALIDATION_MARKERS):
                has_validation = True

        if injections:
            result.vulnerabilities.append(_vuln(
                "high", "potential_sql_injection",
                f"{injections} potential SQL injection vulnerabilities found",
                "Database compromise and data theft",
            ))
            result.recommendations.append("Use parameterized queries and input validation")
        else:
            result.score += 10

        if has_validation:
            result.score += 10
        else:
            result.vulnerabilities.append(_vuln(
                "medium", "no_input_validation",
                "No input validation libraries detected",
                "Potential injection and validation bypass attacks",
            ))
            result.recommendations.append("Implement comprehensive input validation")

        return result


# ─── Authentication ──────────────────────────────────────────────


_POSITIVE = "positive"

_AUTH_PATTERNS: tuple[tuple[re.Pattern[str], str, str], ...] = (
    (re.compile(r'password.*=.*"[^"]{1,5}"', re.I), "weak_password", "high"),
    (re.compile(r'jwt.*secret.*=.*"[^"]{1,20}"', re.I), "weak_jwt_secret", "high"),
    (re.compile(r"bcrypt|scrypt|argon2", re.I), "secure_hashing", _POSITIVE),
    (re.compile(r"md5|sha1(?!.*hmac)", re.I), "weak_hashing", "medium"),
    (re.compile(r'session.*secret.*=.*"[^"]{1,20}"', re.I), "weak_session_secret", "medium"),
)


class AuthenticationProbe(ScanningProbe):
    name = "Authentication Security"
    max_score = 25

    def run_sync(self) -> SecurityTestResult:
        result = self.new_result()
        secure_hashing = False
        issues: list[tuple[str, str, str]] = []

        for path in self.code_files(["*.js", "*.ts", "*.py"]):
            try:
                content = read_text(path)
            except OSError:
                continue
            for pattern, issue, severity in _AUTH_PATTERNS:
                if not pattern.search(content):
                    continue
                if severity == _POSITIVE:
                    secure_hashing = True
                else:
                    issues.append((relative(path, self._root), issue, severity))

        if secure_hashing:
            result.score += 10
        else:
            result.vulnerabilities.append(_vuln(
                "medium", "no_secure_hashing",
                "No secure password hashing detected",
                "Passwords may be stored insecurely",
            ))
            result.recommendations.append("Use bcrypt, scrypt, or Argon2 for password hashing")

        for file, issue, severity in issues:
            result.vulnerabilities.append(_vuln(
                severity, issue,
                f"Authentication security issue in {file}",
                "Potential authentication bypass or credential theft",
            ))
        if not issues:
            result.score += 15

        return result


# ─── Cryptography ────────────────────────────────────────────────


_CRYPTO_PATTERNS: tuple[tuple[re.Pattern[str], str, str], ...] = (
    (re.compile(r"crypto\.createCipher\(", re.I), "deprecated_crypto", "medium"),
    (re.compile(r"\b(des|rc4|md4)\b", re.I), "weak_crypto_algorithm", "high"),
    (
        re.compile(r"randomBytes\(.*[1-9]\)|secrets\.token_\w+\(|os\.urandom\(", re.I),
        "good_random",
        _POSITIVE,
    ),
    (re.compile(r"Math\.random\(\)|\brandom\.random\(\)"), "weak_random", "medium"),
)


class CryptographyProbe(ScanningProbe):
    name = "Cryptographic Security"
    max_score = 15

    def run_sync(self) -> SecurityTestResult:
        result = self.new_result()
        good_random = False
        issues: list[tuple[str, str, str]] = []

        for path in self.code_files(["*.js", "*.ts", "*.py"], limit=15):
            try:
                content = read_text(path)
            except OSError:
                continue
            for pattern, issue, severity in _CRYPTO_PATTERNS:
                if not pattern.search(content):
                    continue
                if severity == _POSITIVE:
                    good_random = True
                else:
                    issues.append((relative(path, self._root), issue, severity))

        if good_random:
            result.score += 8

        if issues:
            for file, issue, severity in issues:
                result.vulnerabilities.append(_vuln(
                    severity, issue,
                    f"Cryptographic issue in {file}",
                    "Weak encryption or random number generation",
                ))
            result.recommendations.append(
                "Use strong cryptographic algorithms and secure random number generation"
            )
        else:
            result.score += 7

        return result
