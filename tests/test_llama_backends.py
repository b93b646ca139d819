"""
Unit tests for the llama.cpp backends.
HTTP, subprocess and llama_cpp are mocked; no model or binary is needed.
"""
import unittest
import tempfile
import time
import urllib.error
import sys
import os
from types import SimpleNamespace
from unittest.mock import Mock, patch, MagicMock

# Add planwise to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from planwise.brain.inference import CancelToken, InferenceCapability, detect_capability
from planwise.brain.llama_native import LlamaCppBackend
from planwise.brain.llama_server import LlamaServerBackend, _ServerProcess, find_server_binary
from planwise.core.errors import GenerationCancelled, GenerationFailure, InvalidHandle, NativeBackendUnavailable


def _stream_response(lines):
    mock_response = MagicMock()
    mock_response.__enter__ = Mock(return_value=mock_response)
    mock_response.__exit__ = Mock(return_value=False)
    mock_response.__iter__ = Mock(return_value=iter(lines))
    return mock_response


class TestLlamaServerStreaming(unittest.TestCase):
    """Test /completion stream parsing."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.backend = LlamaServerBackend("llama-server", port=8099, log_dir=self.tmp.name)
        self.process = Mock()
        self.process.poll.return_value = None
        self.backend._servers[4242] = _ServerProcess(
            process=self.process,
            base_url="http://127.0.0.1:8099",
            model_path="/models/a.gguf",
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_stream_joined(self):
        lines = [
            b'data: {"content":"{\\"action\\":","stop":false}\n',
            b'\n',
            b'data: {"content":"\\"reply\\"}","stop":false}\n',
            b'data: {"content":"","stop":true}\n',
            b'data: {"content":"ignored","stop":false}\n',
        ]
        with patch.object(self.backend.opener, 'open', return_value=_stream_response(lines)):
            text = self.backend.run(4242, "prompt", 32, lambda: False)
        self.assertEqual(text, '{"action":"reply"}')

    def test_malformed_lines_skipped(self):
        lines = [b'data: {"content":"ok"}\n', b'data: not-json\n', b'data: [DONE]\n']
        with patch.object(self.backend.opener, 'open', return_value=_stream_response(lines)):
            self.assertEqual(self.backend.run(4242, "prompt", 32, lambda: False), "ok")

    def test_should_stop_cancels(self):
        lines = [b'data: {"content":"a"}\n', b'data: {"content":"b"}\n']
        with patch.object(self.backend.opener, 'open', return_value=_stream_response(lines)):
            with self.assertRaises(GenerationCancelled):
                self.backend.run(4242, "prompt", 32, lambda: True)

    def test_connection_error(self):
        with patch.object(self.backend.opener, 'open', side_effect=urllib.error.URLError("refused")):
            with self.assertRaises(GenerationFailure):
                self.backend.run(4242, "prompt", 32, lambda: False)

    def test_unknown_handle(self):
        with self.assertRaises(InvalidHandle):
            self.backend.run(7, "prompt", 32, lambda: False)

    def test_dead_server(self):
        self.process.poll.return_value = 1
        with self.assertRaises(GenerationFailure):
            self.backend.run(4242, "prompt", 32, lambda: False)


class TestLlamaServerProcess(unittest.TestCase):
    """Test server start / stop."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.model = os.path.join(self.tmp.name, "a.gguf")
        with open(self.model, "wb") as f:
            f.write(b"GGUF")
        self.backend = LlamaServerBackend(
            "llama-server", port=8099, startup_timeout=1.0, log_dir=os.path.join(self.tmp.name, "logs")
        )

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_model_returns_zero(self):
        with patch("planwise.brain.llama_server.subprocess.Popen") as popen:
            self.assertEqual(self.backend.load(os.path.join(self.tmp.name, "missing.gguf")), 0)
        popen.assert_not_called()

    def test_load_and_unload(self):
        process = Mock(pid=4242)
        process.poll.return_value = None
        with patch("planwise.brain.llama_server.subprocess.Popen", return_value=process) as popen, \
                patch.object(self.backend, "healthcheck", return_value=True):
            handle = self.backend.load(self.model)

        self.assertEqual(handle, 4242)
        cmd = popen.call_args[0][0]
        self.assertIn("--model", cmd)
        self.assertEqual(cmd[cmd.index("--host") + 1], "127.0.0.1")
        self.assertEqual(cmd[cmd.index("--port") + 1], "8099")

        self.backend.unload(handle)
        process.terminate.assert_called_once()
        self.backend.unload(handle)
        process.terminate.assert_called_once()

    def test_server_exit_during_startup(self):
        process = Mock(pid=4243, returncode=1)
        process.poll.return_value = 1
        with patch("planwise.brain.llama_server.subprocess.Popen", return_value=process):
            self.assertEqual(self.backend.load(self.model), 0)
        process.terminate.assert_called_once()
        self.assertEqual(self.backend.get_server_info(), {})

    def test_find_server_binary(self):
        self.assertEqual(find_server_binary(self.model), os.path.realpath(self.model))
        with patch("planwise.brain.llama_server.shutil.which", return_value=None):
            self.assertIsNone(find_server_binary(os.path.join(self.tmp.name, "nope")))


class TestLlamaCppBackend(unittest.TestCase):
    """Test the in-process backend against a stand-in llama_cpp module."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.model = os.path.join(self.tmp.name, "a.gguf")
        with open(self.model, "wb") as f:
            f.write(b"GGUF")
        self.llm = Mock()
        self.llm.create_completion.return_value = iter([
            {"choices": [{"text": " {\"action\":"}]},
            {"choices": [{"text": "\"reply\"} "}]},
        ])
        self.module = SimpleNamespace(Llama=Mock(return_value=self.llm))

    def tearDown(self):
        self.tmp.cleanup()

    def test_load_run_unload(self):
        backend = LlamaCppBackend(n_ctx=512, n_threads=2)
        with patch.dict(sys.modules, {"llama_cpp": self.module}):
            handle = backend.load(self.model)
        self.assertEqual(handle, 1)
        self.module.Llama.assert_called_once_with(model_path=self.model, n_ctx=512, n_threads=2, verbose=False)

        self.assertEqual(backend.run(handle, "prompt", 64, lambda: False), '{"action":"reply"}')
        self.assertEqual(self.llm.create_completion.call_args.kwargs["max_tokens"], 64)

        backend.unload(handle)
        self.llm.close.assert_called_once()
        backend.unload(handle)
        self.llm.close.assert_called_once()
        with self.assertRaises(InvalidHandle):
            backend.run(handle, "prompt", 64, lambda: False)

    def test_missing_file(self):
        backend = LlamaCppBackend()
        self.assertEqual(backend.load(os.path.join(self.tmp.name, "missing.gguf")), 0)

    def test_stop_between_chunks(self):
        backend = LlamaCppBackend()
        with patch.dict(sys.modules, {"llama_cpp": self.module}):
            handle = backend.load(self.model)
        with self.assertRaises(GenerationCancelled):
            backend.run(handle, "prompt", 64, lambda: True)


class TestCapability(unittest.TestCase):
    """Test capability detection and cancel tokens."""

    def test_off(self):
        capability = detect_capability("off")
        self.assertFalse(capability.available)
        with self.assertRaises(NativeBackendUnavailable):
            capability.require()

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            detect_capability("cloud")

    def test_llama_cpp_missing(self):
        with patch("planwise.brain.llama_native.llama_cpp_available", return_value=(False, "No module named 'llama_cpp'")):
            capability = detect_capability("llama_cpp")
        self.assertFalse(capability.available)
        self.assertIn("llama_cpp", capability.reason)

    def test_llama_server_missing_binary(self):
        with patch("planwise.brain.llama_server.find_server_binary", return_value=None):
            self.assertFalse(detect_capability("llama_server").available)

    def test_available_capability(self):
        backend = Mock()
        capability = InferenceCapability(backend, "fake")
        self.assertTrue(capability.available)
        self.assertIs(capability.require(), backend)

    def test_cancel_token(self):
        token = CancelToken()
        self.assertFalse(token.should_stop())
        token.cancel()
        self.assertTrue(token.cancelled)
        self.assertTrue(token.should_stop())

    def test_cancel_token_deadline(self):
        self.assertFalse(CancelToken(timeout_sec=-1).should_stop())
        token = CancelToken(timeout_sec=0.0001)
        time.sleep(0.01)
        self.assertTrue(token.expired())


if __name__ == '__main__':
    unittest.main()
