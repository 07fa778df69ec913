"""
Tests for the security probes and SecurityValidator.

Covers:
  - Scoring of each scanning probe on small fixture projects
  - Web server probe over httpx.MockTransport
  - Dependency audit with a stubbed subprocess runner
  - Overall status rules
  - A raising probe recorded as 0 of 10, report writer failures contained
"""

from __future__ import annotations

import os
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from truthforge.clients.process import CommandResult
from truthforge.config import TruthForgeConfig
from truthforge.systems.evidence.security import (
    AuthenticationProbe,
    CryptographyProbe,
    DependencyAuditProbe,
    EnvironmentProbe,
    FileSystemProbe,
    InputValidationProbe,
    SecurityValidator,
    WebServerProbe,
    determine_overall_status,
)
from truthforge.systems.evidence.security.probes import SecurityProbe
from truthforge.systems.evidence.types import SecurityTestResult, SecurityVulnerability


def _types(result: SecurityTestResult) -> list[str]:
    return [v.type for v in result.vulnerabilities]


# ─── File system ─────────────────────────────────────────────────


class TestFileSystemProbe:
    @pytest.mark.asyncio
    async def test_clean_project(self, tmp_path):
        (tmp_path / "main.py").write_text("print('hi')\n")
        result = await FileSystemProbe(tmp_path, [".env", "*.pem"]).run()
        assert result.score == 20
        assert result.vulnerabilities == []

    @pytest.mark.asyncio
    async def test_sensitive_and_world_writable(self, tmp_path):
        (tmp_path / "server.pem").write_text("-----BEGIN-----")
        shared = tmp_path / "shared.txt"
        shared.write_text("x")
        os.chmod(shared, 0o666)
        result = await FileSystemProbe(tmp_path, [".env", "*.pem"]).run()

        assert result.score == 0
        assert _types(result) == ["sensitive_files_exposed", "world_writable_files"]
        assert result.vulnerabilities[0].files == ["server.pem"]

    @pytest.mark.asyncio
    async def test_git_remote_over_http(self, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "config").write_text('[remote "origin"]\n\turl = http://example.com/repo.git\n')
        result = await FileSystemProbe(tmp_path, [], excluded_dirs=[".git"]).run()
        assert "insecure_git_remote" in _types(result)
        assert result.score == 20


# ─── Environment ─────────────────────────────────────────────────


class TestEnvironmentProbe:
    @pytest.mark.asyncio
    async def test_no_env_file(self, tmp_path):
        result = await EnvironmentProbe(tmp_path).run()
        assert result.score == 10
        assert result.vulnerabilities == []

    @pytest.mark.asyncio
    async def test_credentials_and_not_ignored(self, tmp_path):
        (tmp_path / ".env").write_text("# local\nDB_PASSWORD=hunter2\nAPI_TOKEN=abc\n")
        (tmp_path / ".gitignore").write_text("node_modules\n")
        result = await EnvironmentProbe(tmp_path).run()

        assert result.score == 0
        assert _types(result) == ["sensitive_env_vars", "env_not_ignored"]
        assert result.vulnerabilities[1].severity == "critical"
        issues = [d["issue"] for d in result.vulnerabilities[0].details]
        assert issues == ["password in .env", "token in .env"]

    @pytest.mark.asyncio
    async def test_harmless_env_that_is_ignored(self, tmp_path):
        (tmp_path / ".env").write_text("PORT=3000\nDEBUG=true\n")
        (tmp_path / ".gitignore").write_text(".env\n")
        result = await EnvironmentProbe(tmp_path).run()
        assert result.score == 20
        assert result.vulnerabilities == []


# ─── Dependency audit ────────────────────────────────────────────


class TestDependencyAuditProbe:
    @pytest.mark.asyncio
    async def test_npm_audit_findings(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")

        async def fake_run(*args, **kwargs):
            if args[:2] == ("npm", "audit"):
                return CommandResult(1, '{"vulnerabilities": {"lodash": {}, "minimist": {}}}', "")
            return CommandResult(0, "", "")

        with patch("truthforge.systems.evidence.security.probes.run_command", side_effect=fake_run):
            result = await DependencyAuditProbe(tmp_path).run()

        assert _types(result) == ["npm_vulnerabilities"]
        assert result.vulnerabilities[0].packages == ["lodash", "minimist"]
        # 15 - 2*2 for the audit, 10 for nothing outdated
        assert result.score == 21

    @pytest.mark.asyncio
    async def test_npm_missing_adds_recommendation(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")
        with patch("truthforge.systems.evidence.security.probes.run_command", AsyncMock(return_value=None)):
            result = await DependencyAuditProbe(tmp_path).run()
        assert result.score == 0
        assert result.recommendations == ["Run npm audit manually to check for vulnerabilities"]

    @pytest.mark.asyncio
    async def test_pip_audit_clean(self, tmp_path):
        (tmp_path / "requirements.txt").write_text("httpx\n")
        mock = AsyncMock(return_value=CommandResult(0, '{"dependencies": [{"name": "httpx", "vulns": []}]}', ""))
        with patch("truthforge.systems.evidence.security.probes.run_command", mock):
            result = await DependencyAuditProbe(tmp_path).run()
        assert result.score == 5
        assert mock.await_args.args == ("pip-audit", "-f", "json", "-r", "requirements.txt")

    @pytest.mark.asyncio
    async def test_no_manifests_scores_nothing(self, tmp_path):
        result = await DependencyAuditProbe(tmp_path).run()
        assert result.score == 0
        assert result.max_score == 25


# ─── Web server ──────────────────────────────────────────────────


_ALL_HEADERS = {
    "x-frame-options": "DENY",
    "x-content-type-options": "nosniff",
    "x-xss-protection": "1",
    "strict-transport-security": "max-age=1",
    "content-security-policy": "default-src 'self'",
}


class TestWebServerProbe:
    @pytest.mark.asyncio
    async def test_no_servers_running(self, tmp_path):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await WebServerProbe(tmp_path, [3000, 9000], transport=httpx.MockTransport(refuse)).run()
        assert result.score == 10

    @pytest.mark.asyncio
    async def test_hardened_server_without_https(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.scheme == "http" and request.url.port == 3000:
                return httpx.Response(200, headers=_ALL_HEADERS)
            raise httpx.ConnectError("refused", request=request)

        result = await WebServerProbe(tmp_path, [3000, 9000], transport=httpx.MockTransport(handler)).run()
        assert result.score == 8
        assert _types(result) == ["no_https"]

    @pytest.mark.asyncio
    async def test_chatty_server_missing_headers(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"server": "nginx/1.0", "x-powered-by": "Express"})

        result = await WebServerProbe(tmp_path, [9000], transport=httpx.MockTransport(handler)).run()
        assert result.score == 0
        assert _types(result) == ["missing_security_headers", "server_info_disclosure"]
        assert len(result.vulnerabilities[0].details) == 5


# ─── Source scanning probes ──────────────────────────────────────


class TestInputValidationProbe:
    @pytest.mark.asyncio
    async def test_concatenated_sql(self, tmp_path):
        (tmp_path / "db.js").write_text(
            'const q = "SELECT * FROM users WHERE id = " + req.params.id;\n'
        )
        result = await InputValidationProbe(tmp_path).run()
        assert _types(result) == ["potential_sql_injection", "no_input_validation"]
        assert result.score == 0

    @pytest.mark.asyncio
    async def test_validated_parameterized(self, tmp_path):
        (tmp_path / "models.py").write_text(
            "from pydantic import BaseModel\n"
            'cur.execute("SELECT * FROM users WHERE id = ?", (user_id,))\n'
        )
        result = await InputValidationProbe(tmp_path).run()
        assert result.score == 20

    @pytest.mark.asyncio
    async def test_test_files_skipped(self, tmp_path):
        (tmp_path / "test_queries.py").write_text('q = "SELECT * FROM t WHERE a = " + x\n')
        result = await InputValidationProbe(tmp_path).run()
        assert "potential_sql_injection" not in _types(result)


class TestAuthenticationProbe:
    @pytest.mark.asyncio
    async def test_secure_hashing_no_issues(self, tmp_path):
        (tmp_path / "auth.py").write_text("import bcrypt\nhashed = bcrypt.hashpw(pw, bcrypt.gensalt())\n")
        result = await AuthenticationProbe(tmp_path).run()
        assert result.score == 25

    @pytest.mark.asyncio
    async def test_weak_secret_and_md5(self, tmp_path):
        (tmp_path / "auth.js").write_text(
            'const jwtSecret = "abc";\nconst h = crypto.createHash("md5");\n'
        )
        result = await AuthenticationProbe(tmp_path).run()
        assert result.score == 0
        assert _types(result) == ["no_secure_hashing", "weak_jwt_secret", "weak_hashing"]


class TestCryptographyProbe:
    @pytest.mark.asyncio
    async def test_good_random_only(self, tmp_path):
        (tmp_path / "tokens.py").write_text("import secrets\ntoken = secrets.token_hex(32)\n")
        result = await CryptographyProbe(tmp_path).run()
        assert result.score == 15

    @pytest.mark.asyncio
    async def test_weak_random(self, tmp_path):
        (tmp_path / "id.js").write_text("const id = Math.random().toString(36);\n")
        result = await CryptographyProbe(tmp_path).run()
        assert result.score == 0
        assert _types(result) == ["weak_random"]

    @pytest.mark.asyncio
    async def test_words_containing_des_are_fine(self, tmp_path):
        (tmp_path / "ui.js").write_text("// describes the design of the modes panel\n")
        result = await CryptographyProbe(tmp_path).run()
        assert result.vulnerabilities == []


# ─── Validator ───────────────────────────────────────────────────


class _FixedProbe(SecurityProbe):
    def __init__(self, name: str, score: int, max_score: int, vulns=None, error: Exception | None = None):
        super().__init__(root=None)
        self.name = name
        self.max_score = max_score
        self._score = score
        self._vulns = vulns or []
        self._error = error

    async def run(self) -> SecurityTestResult:
        if self._error is not None:
            raise self._error
        result = self.new_result()
        result.score = self._score
        result.vulnerabilities.extend(self._vulns)
        return result


def _vuln(severity: str) -> SecurityVulnerability:
    return SecurityVulnerability(severity=severity, type="t", description="d")


class TestDetermineOverallStatus:
    @pytest.mark.parametrize(
        ("score", "severities", "expected"),
        [
            (95, ["critical"], "critical"),
            (95, ["high", "high", "high"], "poor"),
            (95, ["high", "high"], "excellent"),
            (49, [], "poor"),
            (50, [], "fair"),
            (69, [], "fair"),
            (70, [], "good"),
            (84, [], "good"),
            (85, [], "excellent"),
        ],
    )
    def test_rules(self, score, severities, expected):
        assert determine_overall_status(score, [_vuln(s) for s in severities]) == expected


class TestSecurityValidator:
    @pytest.mark.asyncio
    async def test_sums_probe_scores(self):
        validator = SecurityValidator([
            _FixedProbe("a", 20, 30),
            _FixedProbe("b", 15, 20, vulns=[_vuln("low")]),
        ])
        evidence = await validator.collect()
        assert evidence.score == 35
        assert evidence.max_score == 50
        assert evidence.overall_score == 70
        assert evidence.overall_status == "good"
        assert len(evidence.vulnerabilities) == 1

    @pytest.mark.asyncio
    async def test_raising_probe_counts_zero_of_ten(self):
        validator = SecurityValidator([
            _FixedProbe("ok", 30, 30),
            _FixedProbe("broken", 0, 25, error=RuntimeError("probe crashed")),
        ])
        evidence = await validator.collect()

        broken = evidence.tests[1]
        assert broken.status == "error"
        assert broken.error == "probe crashed"
        assert broken.max_score == 10
        assert evidence.max_score == 40
        assert evidence.overall_score == 75

    @pytest.mark.asyncio
    async def test_report_writer_failure_is_contained(self):
        writer = MagicMock(side_effect=OSError("read-only"))
        evidence = await SecurityValidator([_FixedProbe("a", 10, 10)], report_writer=writer).collect()
        writer.assert_called_once()
        assert evidence.overall_status == "excellent"

    def test_degraded_shape(self):
        evidence = SecurityValidator([]).degraded("timed out")
        assert evidence.overall_status == "error"
        assert evidence.error == "timed out"
        assert evidence.score == 0
        assert evidence.max_score == 0

    def test_degraded_carries_full_max_score(self):
        validator = SecurityValidator([_FixedProbe("a", 30, 30), _FixedProbe("b", 20, 25)])
        evidence = validator.degraded("timed out")
        assert evidence.score == 0
        assert evidence.max_score == 55

    def test_configured_probes_max_out_at_165(self, tmp_path):
        config = TruthForgeConfig(paths={"root": str(tmp_path)})
        assert SecurityValidator.from_config(config).max_score == 165
