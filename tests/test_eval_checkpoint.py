import argparse
import json
import tempfile
import unittest
from pathlib import Path

import numpy as np

from cartpole_rl.agent import PolicyGradientAgent
from cartpole_rl.checkpoint import CheckpointManager, checkpoint_dir_for_width
from cartpole_rl.evaluate_checkpoint import _aggregate_metrics, build_parser, run_evaluation


def _eval_args(td, **overrides):
    args = dict(
        checkpoint_dir=str(Path(td) / "ckpt"),
        checkpoint_path=None,
        hidden_size=16,
        episodes=5,
        max_episode_steps=30,
        mode="sample",
        seed=123,
        output_dir=str(Path(td) / "out"),
        output_prefix="smoke",
        progress="off",
    )
    args.update(overrides)
    return argparse.Namespace(**args)


class TestEvaluateCheckpoint(unittest.TestCase):
    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        self.assertEqual(args.episodes, 100)
        self.assertEqual(args.max_episode_steps, 500)
        self.assertEqual(args.mode, "sample")
        self.assertEqual(args.progress, "on")
        self.assertIsNone(args.checkpoint_path)
        self.assertEqual(args.hidden_size, 16)

    def test_metrics_aggregation(self):
        steps = np.array([12, 100, 40, 100, 48], dtype=np.int64)
        m = _aggregate_metrics("greedy", steps, max_episode_steps=100, eval_time_sec=2.0)
        self.assertEqual(m.mode, "greedy")
        self.assertEqual(m.episodes, 5)
        self.assertEqual(m.success_count, 2)
        self.assertAlmostEqual(m.success_rate, 0.4, places=6)
        self.assertAlmostEqual(m.steps_min, 12.0, places=6)
        self.assertAlmostEqual(m.steps_mean, 60.0, places=6)
        self.assertAlmostEqual(m.steps_max, 100.0, places=6)
        self.assertAlmostEqual(m.episodes_per_sec, 2.5, places=6)

    def test_smoke_evaluation_writes_artifacts(self):
        with tempfile.TemporaryDirectory() as td:
            args = _eval_args(td)
            CheckpointManager(checkpoint_dir_for_width(args.checkpoint_dir, 16)).save(PolicyGradientAgent(seed=1), episode=42)

            out = run_evaluation(args)
            self.assertTrue(Path(out["hist_plot"]).exists())
            self.assertTrue(Path(out["csv"]).exists())
            self.assertTrue(Path(out["json"]).exists())
            self.assertEqual(out["loaded_episode"], 42)
            self.assertEqual(out["metrics"].episodes, 5)
            self.assertTrue(np.all((out["steps"] >= 1) & (out["steps"] <= 30)))

            payload = json.loads(Path(out["json"]).read_text(encoding="utf-8"))
            self.assertEqual(payload["config"]["loaded_episode"], 42)
            self.assertEqual(payload["metrics"]["episodes"], 5)

    def test_greedy_mode_is_deterministic_for_fixed_seed(self):
        with tempfile.TemporaryDirectory() as td:
            args = _eval_args(td, mode="greedy")
            CheckpointManager(checkpoint_dir_for_width(args.checkpoint_dir, 16)).save(PolicyGradientAgent(seed=2), episode=1)
            first = run_evaluation(args)["steps"]
            second = run_evaluation(args)["steps"]
            self.assertTrue(np.array_equal(first, second))

    def test_hidden_size_selects_width_subdirectory(self):
        with tempfile.TemporaryDirectory() as td:
            args = _eval_args(td, hidden_size=8)
            CheckpointManager(checkpoint_dir_for_width(args.checkpoint_dir, 16)).save(PolicyGradientAgent(seed=1), episode=50)
            with self.assertRaises(RuntimeError):
                run_evaluation(args)

            narrow = PolicyGradientAgent(hidden_size=8, seed=1)
            CheckpointManager(checkpoint_dir_for_width(args.checkpoint_dir, 8)).save(narrow, episode=7)
            out = run_evaluation(args)
            self.assertEqual(out["loaded_episode"], 7)
            self.assertEqual(Path(out["checkpoint_path"]).parent.name, "h8")

    def test_missing_checkpoint_raises(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(RuntimeError):
                run_evaluation(_eval_args(td))


if __name__ == "__main__":
    unittest.main()
