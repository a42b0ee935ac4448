#!/usr/bin/env python3
"""Run the MovieLens recommender experiment with fixed hyperparameters.

Hyperparameters:
  embedding_dim 50
  rating_range 0 5.5  (ratings are 0.5..5 stars; sigmoid never reaches its ends)
  batch_size 64, max_iters 20_000, lr 5e-3, weight_decay 0.1

Usage:
  python scripts/run_movielens_experiment.py [--mlp] [--cuda] [--wandb]
  Requires data/movielens_ratings.npz with user, item, rating arrays.
"""

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = REPO_ROOT / "data"
RATINGS = DATA_DIR / "movielens_ratings.npz"
EXPORT_DIR = REPO_ROOT / "exports" / "movielens"

EMBEDDING_DIM = 50
HIDDEN_DIM = 100
RATING_RANGE = (0.0, 5.5)

BATCH_SIZE = 64
MAX_ITERS = 20_000
LR = 5e-3
WEIGHT_DECAY = 0.1
LOG_INTERVAL = 500
EVAL_INTERVAL = 2000


def main() -> None:
    if not RATINGS.exists():
        print(
            f"Ratings not found at {RATINGS}. "
            "Save the MovieLens ratings as an .npz with 1D arrays "
            "'user', 'item' and 'rating'.",
            file=sys.stderr,
        )
        sys.exit(1)

    model = "mlp" if "--mlp" in sys.argv else "dot"
    argv = [
        "--ratings", str(RATINGS),
        "--model", model,
        "--embedding_dim", str(EMBEDDING_DIM),
        "--hidden_dim", str(HIDDEN_DIM),
        "--rating_range", str(RATING_RANGE[0]), str(RATING_RANGE[1]),
        "--batch_size", str(BATCH_SIZE),
        "--max_iters", str(MAX_ITERS),
        "--lr", str(LR),
        "--weight_decay", str(WEIGHT_DECAY),
        "--log_interval", str(LOG_INTERVAL),
        "--eval_interval", str(EVAL_INTERVAL),
        "--export_embeddings", str(EXPORT_DIR / f"{model}_embeddings.npz"),
        "--device", "cuda:0" if "--cuda" in sys.argv else "cpu",
    ]
    if "--wandb" in sys.argv:
        argv.append("--wandb")

    from embedlab.training.train import main as train_main
    train_main(argv)


if __name__ == "__main__":
    main()
