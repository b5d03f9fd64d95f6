"""
Controller sandbox tests

Runs stored handler code through ControllerSandbox: success and failure
results, the restricted builtins, time budgets, the compile cache, event
dispatch and filter chains.
"""

import asyncio

import pytest

from storefront.plugins.sandbox import ControllerRequest, ControllerResponse, ControllerSandbox, check_source
from storefront.schemas.plugin import ArtifactCreate
from storefront.services import artifact_service

from conftest import STORE_ID


async def _controller(test_db, content, name="ctl", plugin_id="P"):
    return await artifact_service.put_artifact(
        test_db,
        plugin_id,
        ArtifactCreate(kind="controller", file_name=f"{name}.py", controller_name=name, content=content),
    )


@pytest.fixture
async def plugin(install_plugin):
    return await install_plugin("P")


class TestControllerResponse:
    def test_fluent_helpers(self):
        response = ControllerResponse().status(201).json({"a": 1}).set_header("X-Trace", "abc")

        assert response.status_code == 201
        assert response.body == {"a": 1}
        assert response.headers == {"content-type": "application/json", "x-trace": "abc"}


class TestExecute:
    @pytest.mark.asyncio
    async def test_async_handler(self, test_db, plugin, sandbox):
        artifact = await _controller(
            test_db,
            "async def handler(request, response, context):\n"
            "    return response.status(201).json({'echo': request.body, 'plugin': context.plugin_id})\n",
        )

        result = await sandbox.execute(artifact, ControllerRequest(method="POST", body={"q": 1}))

        assert result.ok is True
        assert result.status_code == 201
        assert result.body == {"echo": {"q": 1}, "plugin": "P"}
        assert result.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_sync_handler_return_value_becomes_body(self, test_db, plugin, sandbox):
        artifact = await _controller(
            test_db, "def handler(request, response, context):\n    return sorted(request.query)\n"
        )

        result = await sandbox.execute(artifact, ControllerRequest(query={"b": 1, "a": 2}))

        assert result.ok is True
        assert result.body == ["a", "b"]

    @pytest.mark.asyncio
    async def test_sync_handler_data_access(self, test_db, test_store, plugin, sandbox):
        artifact = await _controller(
            test_db,
            "def handler(request, response, context):\n"
            "    row = context.db.fetch_one('SELECT slug FROM stores WHERE id = :id', {'id': request.store_id})\n"
            "    return response.json(row)\n",
        )

        result = await sandbox.execute(artifact, ControllerRequest(store_id=STORE_ID))

        assert result.body == {"slug": "acme"}

    @pytest.mark.asyncio
    async def test_error_status_is_not_ok(self, test_db, plugin, sandbox):
        artifact = await _controller(
            test_db, "def handler(request, response, context):\n    return response.status(404).json({'missing': True})\n"
        )

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert result.status_code == 404
        assert result.error is None

    @pytest.mark.asyncio
    async def test_exception_becomes_failed_result(self, test_db, plugin, sandbox):
        artifact = await _controller(
            test_db, "def handler(request, response, context):\n    return 1 / 0\n"
        )

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert result.status_code == 500
        assert result.error["error"]["error_code"] == "CONTROLLER_EXECUTION_FAILED"
        assert result.error["error"]["message"].startswith("ZeroDivisionError")

    @pytest.mark.asyncio
    async def test_syntax_error(self, test_db, plugin, sandbox):
        artifact = await _controller(test_db, "def handler(:\n")

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert "SyntaxError" in result.error["error"]["message"]

    @pytest.mark.asyncio
    async def test_missing_handler(self, test_db, plugin, sandbox):
        artifact = await _controller(test_db, "value = 1\n")

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert "handler()" in result.error["error"]["message"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "source",
        [
            "import os\ndef handler(request, response, context):\n    return 1\n",
            "def handler(request, response, context):\n    return open('/etc/passwd').read()\n",
            "def handler(request, response, context):\n    return eval('1 + 1')\n",
        ],
    )
    async def test_restricted_builtins(self, test_db, plugin, sandbox, source):
        artifact = await _controller(test_db, source)

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert result.body is None

    @pytest.mark.asyncio
    async def test_timeout(self, test_db, plugin, session_factory):
        sandbox = ControllerSandbox(session_factory, timeout_seconds=0.05)
        artifact = await _controller(
            test_db,
            "def handler(request, response, context):\n"
            "    total = 0\n"
            "    for i in range(10000000):\n"
            "        total += i\n"
            "    return total\n",
        )

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert result.timed_out is True
        assert result.status_code == 504
        assert result.error["error"]["error_code"] == "CONTROLLER_TIMEOUT"
        # Let the abandoned invocation run out before the loop closes
        await asyncio.gather(*list(sandbox._background), return_exceptions=True)


class TestCompileCache:
    @pytest.mark.asyncio
    async def test_redeploy_replaces_cache_entry(self, test_db, plugin, sandbox):
        artifact = await _controller(test_db, "def handler(request, response, context):\n    return 'v1'\n")
        first = await sandbox.execute(artifact, ControllerRequest())
        await sandbox.execute(artifact, ControllerRequest())
        assert sandbox.cache_size == 1

        artifact = await _controller(test_db, "def handler(request, response, context):\n    return 'v2'\n")
        second = await sandbox.execute(artifact, ControllerRequest())

        assert (first.body, second.body) == ("v1", "v2")
        assert sandbox.cache_size == 1


class TestInvokeController:
    @pytest.mark.asyncio
    async def test_unknown_controller(self, plugin, sandbox):
        result = await sandbox.invoke_controller("P", "nope", ControllerRequest())

        assert result.status_code == 404
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_disabled_plugin(self, test_db, install_plugin, sandbox):
        await install_plugin("Q", status="disabled")
        await _controller(test_db, "def handler(request, response, context):\n    return 1\n", plugin_id="Q")

        result = await sandbox.invoke_controller("Q", "ctl", ControllerRequest())

        assert result.status_code == 404
        assert "not active" in result.error["error"]["message"]


class TestEventsAndFilters:
    @pytest.mark.asyncio
    async def test_fire_event_runs_listeners_in_load_order(self, test_db, install_plugin, sandbox):
        listeners = [
            ("second", 20, "return 'second'"),
            ("failing", 15, "raise RuntimeError('listener down')"),
            ("first", 5, "return 'first:' + request.body['plugin_id']"),
        ]
        for plugin_id, priority, body in listeners:
            await install_plugin(
                plugin_id,
                artifacts=[
                    ArtifactCreate(
                        kind="event",
                        file_name="on_install.py",
                        event_name="plugin.installed",
                        load_priority=priority,
                        content=f"def handler(request, response, context):\n    {body}\n",
                    )
                ],
            )

        results = await sandbox.fire_event(test_db, "plugin.installed", {"plugin_id": "P"})

        assert [r.plugin_id for r in results] == ["first", "failing", "second"]
        assert [r.ok for r in results] == [True, False, True]
        assert [r.body for r in results] == ["first:P", None, "second"]

    @pytest.mark.asyncio
    async def test_fire_event_without_listeners(self, test_db, sandbox):
        assert await sandbox.fire_event(test_db, "plugin.uninstalled", {"plugin_id": "P"}) == []

    @pytest.mark.asyncio
    async def test_filters_chain_and_skip_failures(self, test_db, install_plugin, sandbox):
        hooks = [
            ("add-one", 1, "return request.body + 1"),
            ("broken", 2, "raise ValueError('bad filter')"),
            ("times-ten", 3, "return request.body * 10"),
        ]
        for plugin_id, priority, body in hooks:
            await install_plugin(
                plugin_id,
                artifacts=[
                    ArtifactCreate(
                        kind="hook",
                        file_name="price.py",
                        hook_name="price.filter",
                        load_priority=priority,
                        content=f"def handler(request, response, context):\n    {body}\n",
                    )
                ],
            )

        assert await sandbox.apply_filters(test_db, "price.filter", 4) == 50

    @pytest.mark.asyncio
    async def test_listeners_of_disabled_plugins_do_not_run(self, test_db, install_plugin, sandbox):
        await install_plugin(
            "P",
            status="disabled",
            artifacts=[
                ArtifactCreate(
                    kind="event",
                    file_name="on_save.py",
                    event_name="slot_configuration.saved",
                    content="def handler(request, response, context):\n    return 1\n",
                )
            ],
        )

        assert await sandbox.fire_event(test_db, "slot_configuration.saved", {"store_id": STORE_ID}) == []


class TestCodeChecks:
    @pytest.mark.parametrize(
        "source",
        [
            "x = response.status.__globals__\n",
            "x = context._handle\n",
            "x = __builtins__\n",
            "x = (i for i in []).gi_frame.f_globals\n",
            "from os import path\n",
            "x = '{0.__class__}'.format(request)\n",
        ],
    )
    def test_rejected(self, source):
        assert check_source(source)

    def test_plain_handler_passes(self):
        source = (
            "async def handler(request, response, context):\n"
            "    rows = await context.db.fetch_all('SELECT 1 AS one')\n"
            "    context.logger.info('rows %s', len(rows))\n"
            "    return response.status(200).json({'rows': rows, 'path': request.path})\n"
        )
        assert check_source(source) == []

    @pytest.mark.asyncio
    async def test_function_globals_cannot_be_reached(self, test_db, plugin, sandbox):
        artifact = await _controller(
            test_db,
            "def handler(request, response, context):\n"
            "    os = response.status.__globals__['builtins'].__import__('os')\n"
            "    return os.getcwd()\n",
        )

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert result.body is None
        assert result.error["error"]["error_code"] == "CONTROLLER_EXECUTION_FAILED"
        assert "__globals__" in result.error["error"]["message"]
        assert sandbox.cache_size == 0

    @pytest.mark.asyncio
    async def test_generator_frame_cannot_be_reached(self, test_db, plugin, sandbox):
        artifact = await _controller(
            test_db,
            "def handler(request, response, context):\n"
            "    frame = (i for i in [1]).gi_frame\n"
            "    return list(frame.f_back.f_globals)\n",
        )

        result = await sandbox.execute(artifact, ControllerRequest())

        assert result.ok is False
        assert "gi_frame" in result.error["error"]["message"]


class TestWorkerPool:
    SLOW = (
        "def handler(request, response, context):\n"
        "    total = 0\n"
        "    for i in range(20000000):\n"
        "        total += i\n"
        "    return total\n"
    )

    @pytest.mark.asyncio
    async def test_hung_plugin_is_refused_without_starving_others(self, test_db, install_plugin, session_factory):
        sandbox = ControllerSandbox(session_factory, timeout_seconds=0.05, max_workers=2, max_pending_per_plugin=1)
        await install_plugin("P")
        await install_plugin("Q")
        slow = await _controller(test_db, self.SLOW, name="slow", plugin_id="P")
        again = await _controller(
            test_db, "def handler(request, response, context):\n    return 'P'\n", name="quick", plugin_id="P"
        )
        healthy = await _controller(test_db, "def handler(request, response, context):\n    return 'Q'\n", plugin_id="Q")

        try:
            first = await sandbox.execute(slow, ControllerRequest())
            assert first.timed_out is True
            assert sandbox.pending("P") == 1
            sandbox.timeout_seconds = 5.0

            refused = await sandbox.execute(again, ControllerRequest())
            assert refused.ok is False
            assert refused.timed_out is False
            assert "unfinished invocations" in refused.error["error"]["message"]

            other = await sandbox.execute(healthy, ControllerRequest())
            assert other.ok is True
            assert other.body == "Q"
        finally:
            await asyncio.gather(*list(sandbox._background), return_exceptions=True)
            sandbox.shutdown()

        assert sandbox.pending("P") == 0

    @pytest.mark.asyncio
    async def test_plugin_recovers_once_its_workers_return(self, test_db, plugin, session_factory):
        sandbox = ControllerSandbox(session_factory, timeout_seconds=0.05, max_pending_per_plugin=1)
        slow = await _controller(test_db, self.SLOW, name="slow")
        quick = await _controller(test_db, "def handler(request, response, context):\n    return 'ok'\n", name="quick")

        try:
            assert (await sandbox.execute(slow, ControllerRequest())).timed_out is True
            await asyncio.gather(*list(sandbox._background), return_exceptions=True)
            assert sandbox.pending("P") == 0

            sandbox.timeout_seconds = 5.0
            result = await sandbox.execute(quick, ControllerRequest())
        finally:
            sandbox.shutdown()

        assert result.ok is True
        assert result.body == "ok"
