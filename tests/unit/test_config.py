import json
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(ROOT / "packages" / "core"))

from hwsampler_core.config import DEFAULT_POLL_MS, AppConfig, load_config, save_config


class ConfigTests(unittest.TestCase):
    def test_load_default_when_missing(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "missing.json"
            cfg = load_config(path)
            self.assertIsInstance(cfg, AppConfig)
            self.assertEqual(cfg.sampler.poll_ms, DEFAULT_POLL_MS)
            self.assertEqual(cfg.sampler.poll_ms, 1000)
            self.assertFalse(cfg.sampler.require_gpu)
            self.assertIsNone(cfg.output.path)

    def test_save_and_reload(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            cfg = load_config(path)
            cfg.sampler.poll_ms = 0
            cfg.sampler.require_gpu = True
            cfg.output.path = "/var/log/hw.jsonl"
            save_config(cfg, path)
            reloaded = load_config(path)
            self.assertEqual(reloaded.sampler.poll_ms, 0)
            self.assertTrue(reloaded.sampler.require_gpu)
            self.assertEqual(reloaded.output.path, "/var/log/hw.jsonl")

    def test_migrate_v1_shape(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"poll_interval": 250, "output": "-"}), encoding="utf-8")
            cfg = load_config(path)
            self.assertEqual(cfg.config_version, 2)
            self.assertEqual(cfg.sampler.poll_ms, 250)
            self.assertIsNone(cfg.output.path)

    def test_normalizes_out_of_range_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(
                json.dumps(
                    {
                        "config_version": 2,
                        "sampler": {"poll_ms": -10, "bogus": 1},
                        "output": {"queue_size": -3},
                        "logging": {"level": "chatty"},
                    }
                ),
                encoding="utf-8",
            )
            cfg = load_config(path)
            self.assertEqual(cfg.sampler.poll_ms, 0)
            self.assertEqual(cfg.output.queue_size, 0)
            self.assertEqual(cfg.logging.level, "INFO")
            self.assertFalse(hasattr(cfg.sampler, "bogus"))

    def test_unreadable_file_falls_back_to_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertLogs("hwsampler", level="WARNING"):
                cfg = load_config(path)
            self.assertEqual(cfg.sampler.poll_ms, 1000)


if __name__ == "__main__":
    unittest.main()
