import asyncio
import unittest
from pathlib import Path
from unittest import mock

from livecmd.core.messages import Empty, RunText, Terminate, Text, Undecodable
from livecmd.core.runner import CommandRunner, ManagedProcess

HAS_PROC = Path("/proc/self/stat").exists()


def live_group_members(pgid: int) -> list[int]:
    """Pids in process group ``pgid`` that are not zombies."""
    members = []
    for entry in Path("/proc").iterdir():
        if not entry.name.isdigit():
            continue
        try:
            stat = (entry / "stat").read_text()
        except OSError:
            continue
        # after the parenthesised comm: state ppid pgrp ...
        fields = stat.rsplit(")", 1)[1].split()
        if int(fields[2]) == pgid and fields[0] != "Z":
            members.append(int(entry.name))
    return members


async def wait_until(predicate, timeout: float = 5.0) -> None:  # type: ignore[no-untyped-def]
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class RunnerTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.runner = CommandRunner()
        self.task = asyncio.create_task(self.runner.run())

    async def asyncTearDown(self) -> None:
        if not self.task.done():
            await asyncio.wait_for(self.runner.commands.put(Terminate()), 5)
            await asyncio.wait_for(self.task, 5)

    async def send(self, text: str) -> None:
        await asyncio.wait_for(self.runner.commands.put(RunText(text)), 5)

    async def next_result(self, timeout: float = 5.0):  # type: ignore[no-untyped-def]
        return await asyncio.wait_for(self.runner.results.get(), timeout)

    async def shutdown(self) -> None:
        await asyncio.wait_for(self.runner.commands.put(Terminate()), 5)
        await asyncio.wait_for(self.task, 5)


class RunnerOutputTests(RunnerTestCase):
    async def test_stdout_text(self) -> None:
        await self.send("echo hello")
        self.assertEqual(await self.next_result(), Text("hello\n", "stdout"))
        self.assertFalse(self.runner.running)

    async def test_stderr_used_when_stdout_empty(self) -> None:
        await self.send("echo oops 1>&2")
        self.assertEqual(await self.next_result(), Text("oops\n", "stderr"))

    async def test_stdout_preferred_over_stderr(self) -> None:
        await self.send("echo out; echo err 1>&2")
        self.assertEqual(await self.next_result(), Text("out\n", "stdout"))

    async def test_silent_command_reports_empty(self) -> None:
        await self.send("true")
        self.assertEqual(await self.next_result(), Empty())
        self.assertEqual(self.runner.spawn_count, 1)

    async def test_non_utf8_stdout_is_undecodable(self) -> None:
        await self.send("printf '\\377\\376'")
        self.assertEqual(await self.next_result(), Undecodable("stdout"))

    async def test_non_utf8_stderr_is_undecodable(self) -> None:
        await self.send("printf '\\377' 1>&2")
        self.assertEqual(await self.next_result(), Undecodable("stderr"))

    async def test_blank_text_reports_empty_without_spawning(self) -> None:
        with mock.patch.object(ManagedProcess, "spawn") as spawn:
            await self.send("")
            self.assertEqual(await self.next_result(), Empty())
            await self.send("   ")
            self.assertEqual(await self.next_result(), Empty())
        spawn.assert_not_called()
        self.assertEqual(self.runner.spawn_count, 0)

    async def test_spawn_failure_reports_empty(self) -> None:
        with mock.patch(
            "asyncio.create_subprocess_shell", side_effect=PermissionError("denied")
        ):
            await self.send("echo never")
            self.assertEqual(await self.next_result(), Empty())
        self.assertFalse(self.runner.running)
        await self.send("echo after")
        self.assertEqual(await self.next_result(), Text("after\n"))

    async def test_stdin_is_left_open(self) -> None:
        await self.send("read line; echo got")
        await wait_until(lambda: self.runner.running)
        await asyncio.sleep(0.3)
        self.assertTrue(self.runner.results.empty())
        self.assertTrue(self.runner.running)
        await self.send("echo ok")
        self.assertEqual(await self.next_result(), Text("ok\n"))


class RunnerCancellationTests(RunnerTestCase):
    @unittest.skipUnless(HAS_PROC, "needs /proc to inspect process groups")
    async def test_superseded_sleep_is_killed(self) -> None:
        await self.send("sleep 5")
        await wait_until(lambda: self.runner.running)
        assert self.runner.process is not None
        sleep_pid = self.runner.process.pid
        await self.send("echo done")
        self.assertEqual(await self.next_result(), Text("done\n"))
        await self.shutdown()
        await wait_until(lambda: not live_group_members(sleep_pid), timeout=2)

    @unittest.skipUnless(HAS_PROC, "needs /proc to inspect process groups")
    async def test_background_children_killed_after_shell_exits(self) -> None:
        await self.send("sleep 30 & echo started")
        await wait_until(lambda: self.runner.running)
        process = self.runner.process
        assert process is not None
        pgid = process.pid
        # The shell is gone but the backgrounded sleep keeps the pipes open.
        await wait_until(lambda: not process.alive)
        self.assertTrue(self.runner.running)
        self.assertTrue(live_group_members(pgid))
        await self.send("echo done")
        self.assertEqual(await self.next_result(), Text("done\n"))
        await self.shutdown()
        await wait_until(lambda: not live_group_members(pgid), timeout=2)

    async def test_old_process_terminated_before_new_spawn(self) -> None:
        calls: list[tuple[str, str]] = []
        original_spawn = ManagedProcess.spawn
        original_terminate = ManagedProcess.terminate

        async def recording_spawn(command: str) -> ManagedProcess:
            calls.append(("spawn", command))
            return await original_spawn(command)

        def recording_terminate(process: ManagedProcess) -> None:
            calls.append(("terminate", process.command))
            original_terminate(process)

        with mock.patch.object(
            ManagedProcess, "spawn", side_effect=recording_spawn
        ), mock.patch.object(
            ManagedProcess, "terminate", autospec=True, side_effect=recording_terminate
        ):
            await self.send("sleep 5")
            await wait_until(lambda: self.runner.running)
            await self.send("echo next")
            self.assertEqual(await self.next_result(), Text("next\n"))

        self.assertEqual(
            calls,
            [("spawn", "sleep 5"), ("terminate", "sleep 5"), ("spawn", "echo next")],
        )

    @unittest.skipUnless(HAS_PROC, "needs /proc to inspect process groups")
    async def test_terminate_kills_running_process(self) -> None:
        await self.send("sleep 5")
        await wait_until(lambda: self.runner.running)
        assert self.runner.process is not None
        pid = self.runner.process.pid
        await self.shutdown()
        self.assertIsNone(self.task.exception())
        await wait_until(lambda: not live_group_members(pid), timeout=2)

    async def test_rapid_edits_do_not_deadlock(self) -> None:
        await self.send("sleep 5")
        await wait_until(lambda: self.runner.running)

        async def burst() -> None:
            for idx in range(40):
                # Nobody reads results here, so fast commands fill the slot.
                command = f"echo {idx}" if idx % 2 else f"sleep 5; echo {idx}"
                await self.runner.commands.put(RunText(command))
            await self.runner.commands.put(RunText("echo last"))

        await asyncio.wait_for(burst(), 10)

        latest = None
        while latest != Text("last\n"):
            latest = await self.next_result(timeout=10)
        await asyncio.sleep(0.2)
        self.assertTrue(self.runner.results.empty())
        self.assertFalse(self.runner.running)


if __name__ == "__main__":
    unittest.main()
