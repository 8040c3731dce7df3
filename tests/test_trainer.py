import argparse
import io
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

import numpy as np

from cartpole_rl.agent import PolicyGradientAgent
from cartpole_rl.checkpoint import CheckpointManager, checkpoint_dir_for_width
from cartpole_rl.trainer import ReinforceTrainer, build_parser, load_config, next_metrics


def _train_args(checkpoint_dir, **overrides):
    args = dict(
        episodes=5,
        max_episode_steps=200,
        hidden_size=16,
        lr=0.01,
        gamma=0.99,
        seed=123,
        save_every=1000,
        checkpoint_dir=checkpoint_dir,
        tensorboard_logdir=None,
        log_interval=0,
        stats_window=50,
        progress=False,
    )
    args.update(overrides)
    return argparse.Namespace(**args)


class TestTrainingMetrics(unittest.TestCase):
    def test_running_average_and_best(self):
        history = []
        for ep, score in enumerate([10, 30, 20], start=1):
            history.append(next_metrics(history, ep, score))
        self.assertEqual(history[0].avg_score, 10.0)
        self.assertAlmostEqual(history[1].avg_score, 12.0, places=10)
        self.assertAlmostEqual(history[2].avg_score, 12.8, places=10)
        self.assertEqual([m.best_score for m in history], [10, 30, 30])


class TestConfig(unittest.TestCase):
    def test_yaml_defaults_feed_parser(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = Path(td) / "cfg.yaml"
            cfg.write_text(
                "policy:\n  hidden_size: 32\ntraining:\n  episodes: 7\n  lr: 0.005\n  gamma: 0.95\n",
                encoding="utf-8",
            )
            defaults = load_config(cfg)
            args = build_parser(defaults).parse_args(["--gamma", "0.9"])
            self.assertEqual(args.hidden_size, 32)
            self.assertEqual(args.episodes, 7)
            self.assertEqual(args.lr, 0.005)
            self.assertEqual(args.gamma, 0.9)

    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        self.assertEqual(args.hidden_size, 16)
        self.assertEqual(args.lr, 0.01)
        self.assertEqual(args.gamma, 0.99)
        self.assertEqual(args.max_episode_steps, 500)


class TestReinforceTrainer(unittest.TestCase):
    def test_smoke_run_writes_checkpoints_and_tensorboard(self):
        with tempfile.TemporaryDirectory() as td:
            ckpt_dir = str(Path(td) / "ckpt")
            tb_dir = Path(td) / "tb"
            trainer = ReinforceTrainer(
                _train_args(ckpt_dir, episodes=4, save_every=2, tensorboard_logdir=str(tb_dir), log_interval=2)
            )
            history = trainer.run()

            self.assertEqual([m.episode for m in history], [1, 2, 3, 4])
            self.assertTrue(all(m.score >= 1 for m in history))
            self.assertEqual(trainer.agent.episode_length, 0)
            ckpt = CheckpointManager(checkpoint_dir_for_width(ckpt_dir, 16))
            self.assertTrue(ckpt.latest_path().name.endswith("policy_ep0000004.npz"))
            self.assertTrue(any(tb_dir.rglob("events.out.tfevents.*")))

    def test_resume_from_latest_checkpoint(self):
        with tempfile.TemporaryDirectory() as td:
            ReinforceTrainer(_train_args(td, episodes=3, save_every=3)).run()
            resumed = ReinforceTrainer(_train_args(td, episodes=2, save_every=3))
            self.assertEqual(resumed.start_episode, 3)
            history = resumed.run()
            self.assertEqual([m.episode for m in history], [4, 5])

    def test_checkpoint_with_other_width_is_ignored(self):
        with tempfile.TemporaryDirectory() as td:
            ReinforceTrainer(_train_args(td, episodes=1, save_every=1)).run()
            trainer = ReinforceTrainer(_train_args(td, hidden_size=8))
            self.assertEqual(trainer.start_episode, 0)
            self.assertEqual(trainer.agent.hidden_size, 8)
            self.assertEqual(CheckpointManager(checkpoint_dir_for_width(td, 16)).latest_episode(), 1)

    def test_misplaced_width_checkpoint_is_ignored(self):
        with tempfile.TemporaryDirectory() as td:
            misplaced = PolicyGradientAgent(hidden_size=4, seed=0)
            CheckpointManager(checkpoint_dir_for_width(td, 8)).save(misplaced, episode=3)
            trainer = ReinforceTrainer(_train_args(td, hidden_size=8))
            self.assertEqual(trainer.start_episode, 0)
            self.assertEqual(trainer.agent.hidden_size, 8)

    def test_rebuild_then_resume_keeps_widths_apart(self):
        with tempfile.TemporaryDirectory() as td:
            trainer = ReinforceTrainer(_train_args(td, episodes=5, save_every=1))
            trainer.run()
            trainer.rebuild(hidden_size=8)
            self.assertEqual(trainer.start_episode, 0)
            trainer.args.episodes = 2
            history = trainer.run()
            self.assertEqual([m.episode for m in history], [1, 2])

            wide = CheckpointManager(checkpoint_dir_for_width(td, 16))
            self.assertEqual(wide.latest_episode(), 5)
            self.assertEqual(wide.load(wide.latest_path())[0].hidden_size, 16)

            narrow = ReinforceTrainer(_train_args(td, hidden_size=8))
            self.assertEqual(narrow.start_episode, 2)
            self.assertEqual(narrow.agent.hidden_size, 8)
            resumed = ReinforceTrainer(_train_args(td, hidden_size=16))
            self.assertEqual(resumed.start_episode, 5)
            self.assertEqual(resumed.agent.hidden_size, 16)

    def test_rebuild_continues_numbering_in_existing_width_directory(self):
        with tempfile.TemporaryDirectory() as td:
            ReinforceTrainer(_train_args(td, hidden_size=8, episodes=3, save_every=1)).run()
            trainer = ReinforceTrainer(_train_args(td))
            trainer.rebuild(hidden_size=8)
            self.assertEqual(trainer.start_episode, 3)
            self.assertEqual(trainer.run_episode().episode, 4)

    def test_skipped_checkpoint_goes_through_trainer_log(self):
        with tempfile.TemporaryDirectory() as td:
            ckpt_dir = checkpoint_dir_for_width(td, 16)
            CheckpointManager(ckpt_dir).save(PolicyGradientAgent(seed=0), episode=2)
            (ckpt_dir / "policy_ep0000009.npz").write_bytes(b"")
            out = io.StringIO()
            with redirect_stdout(out):
                trainer = ReinforceTrainer(_train_args(td))
            self.assertEqual(trainer.start_episode, 2)
            lines = [line for line in out.getvalue().splitlines() if "checkpoint_skipped" in line]
            self.assertEqual(len(lines), 1)
            self.assertRegex(lines[0], r"^\[\d{2}:\d{2}:\d{2}\] checkpoint_skipped path=.*policy_ep0000009\.npz")

    def test_episode_is_capped_and_still_trained(self):
        with tempfile.TemporaryDirectory() as td:
            trainer = ReinforceTrainer(_train_args(td, max_episode_steps=3))
            before = trainer.agent.get_parameters()
            result = trainer.run_episode()
            self.assertLessEqual(result.steps, 3)
            self.assertIsNotNone(result.train_stats)
            self.assertEqual(trainer.agent.episode_length, 0)
            if result.steps > 1:
                self.assertFalse(np.array_equal(before.W1, trainer.agent.get_parameters().W1))

    def test_update_hyperparameters_keeps_network(self):
        with tempfile.TemporaryDirectory() as td:
            trainer = ReinforceTrainer(_train_args(td))
            before = trainer.agent.get_parameters()
            agent = trainer.agent
            trainer.update_hyperparameters(lr=0.05, gamma=0.9)
            self.assertIs(trainer.agent, agent)
            self.assertEqual(trainer.agent.learning_rate, 0.05)
            self.assertEqual(trainer.agent.gamma, 0.9)
            self.assertTrue(np.array_equal(before.W1, trainer.agent.get_parameters().W1))
            with self.assertRaises(ValueError):
                trainer.update_hyperparameters(gamma=0.0)

    def test_rebuild_replaces_agent_and_clears_metrics(self):
        with tempfile.TemporaryDirectory() as td:
            trainer = ReinforceTrainer(_train_args(td, episodes=2))
            trainer.run()
            old_agent = trainer.agent
            trainer.rebuild(hidden_size=32)
            self.assertIsNot(trainer.agent, old_agent)
            self.assertEqual(trainer.agent.hidden_size, 32)
            self.assertEqual(trainer.agent.get_parameters().W1.shape, (4, 32))
            self.assertEqual(trainer.history, [])
            self.assertEqual(trainer.env.episode_steps, 0)
            self.assertEqual(trainer.run_episode().episode, 1)
            with self.assertRaises(ValueError):
                trainer.rebuild(hidden_size=0)

    def test_invalid_arguments_rejected(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ValueError):
                ReinforceTrainer(_train_args(td, episodes=0))
            with self.assertRaises(ValueError):
                ReinforceTrainer(_train_args(td, gamma=1.5))

    def test_average_episode_length_improves_on_fixed_seed(self):
        with tempfile.TemporaryDirectory() as td:
            trainer = ReinforceTrainer(_train_args(td, episodes=600, max_episode_steps=500, seed=7))
            history = trainer.run()
            scores = np.array([m.score for m in history], dtype=np.float64)
            early = float(np.mean(scores[:100]))
            late = float(np.mean(scores[-100:]))
            self.assertGreater(late, early, msg=f"early={early:.1f} late={late:.1f}")
            self.assertGreater(history[-1].best_score, 50)


if __name__ == "__main__":
    unittest.main()
