"""Train an embedding recommender on (user, item, rating) triples.

Input is an .npz archive with 1D arrays ``user``, ``item`` and ``rating``.
Raw user/item ids are re-encoded to contiguous embedding rows before training.

Model flags:
  --model dot    DotProductRecommender (embedding dot product + biases)
  --model mlp    MLPRecommender (concatenated embeddings -> hidden layer)
"""

import argparse
import logging
from pathlib import Path

import numpy as np
import torch

from embedlab.model.recommender import DotProductRecommender, MLPRecommender
from embedlab.training.data_loader import encode_ids, get_batch, train_valid_split
from embedlab.training.loss import mse_loss

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def _load_ratings(path: str | Path) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    with np.load(Path(path), allow_pickle=False) as data:
        missing = {"user", "item", "rating"} - set(data.files)
        if missing:
            raise KeyError(f"{path} is missing arrays: {sorted(missing)}")
        return data["user"], data["item"], data["rating"].astype(np.float32)


@torch.no_grad()
def _eval_loss(model, users, items, ratings, device, batch_size) -> float:
    """Full pass (no sampling) over a held-out split."""
    model.eval()
    total, n = 0.0, len(users)
    for start in range(0, n, batch_size):
        u = torch.from_numpy(users[start:start + batch_size]).long().to(device)
        i = torch.from_numpy(items[start:start + batch_size]).long().to(device)
        r = torch.from_numpy(ratings[start:start + batch_size]).float().to(device)
        total += mse_loss(model(u, i), r).item() * len(u)
    model.train()
    return total / n if n else 0.0


def build_model(args: argparse.Namespace, num_users: int, num_items: int) -> torch.nn.Module:
    rating_range = tuple(args.rating_range) if args.rating_range else None
    if args.model == "dot":
        return DotProductRecommender(num_users, num_items, args.embedding_dim, rating_range=rating_range)
    return MLPRecommender(
        num_users, num_items, args.embedding_dim, args.hidden_dim, rating_range=rating_range
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Train embedding recommender")
    # Data
    p.add_argument("--ratings", required=True, help=".npz with user, item, rating arrays")
    p.add_argument("--valid_fraction", type=float, default=0.1)
    p.add_argument("--batch_size", type=int, default=256)
    p.add_argument("--seed", type=int, default=0)
    # Model
    p.add_argument("--model", choices=["dot", "mlp"], default="dot")
    p.add_argument("--embedding_dim", type=int, default=32)
    p.add_argument("--hidden_dim", type=int, default=64)
    p.add_argument("--rating_range", type=float, nargs=2, default=None,
                   help="Squash predictions into (lo, hi), e.g. 0 5.5")
    # Optimizer
    p.add_argument("--lr", type=float, default=1e-2)
    p.add_argument("--weight_decay", type=float, default=1e-4)
    # Training
    p.add_argument("--max_iters", type=int, default=5000)
    p.add_argument("--device", type=str, default="cpu")
    # Output & logging
    p.add_argument("--export_embeddings", type=str, default="",
                   help="Write learned user/item vectors to this .npz")
    p.add_argument("--log_interval", type=int, default=100)
    p.add_argument("--eval_interval", type=int, default=500)
    # W&B
    p.add_argument("--wandb", action="store_true")
    p.add_argument("--wandb_project", type=str, default="embedlab-recommender")
    p.add_argument("--wandb_run_name", type=str, default="")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> torch.nn.Module:
    args = parse_args(argv)
    device = torch.device(args.device)
    torch.manual_seed(args.seed)
    np.random.seed(args.seed)

    logger.info("Loading ratings from %s", args.ratings)
    raw_users, raw_items, ratings = _load_ratings(args.ratings)
    users, user_vocab = encode_ids(raw_users)
    items, item_vocab = encode_ids(raw_items)
    logger.info("%d ratings, %d users, %d items", len(ratings), len(user_vocab), len(item_vocab))

    train_idx, valid_idx = train_valid_split(len(ratings), args.valid_fraction, seed=args.seed)

    model = build_model(args, len(user_vocab), len(item_vocab)).to(device)
    n_params = sum(p.numel() for p in model.parameters() if p.requires_grad)
    logger.info("Model %s parameters: %d", args.model, n_params)

    optimizer = torch.optim.AdamW(model.parameters(), lr=args.lr, weight_decay=args.weight_decay)

    if args.wandb:
        try:
            import wandb
            wandb.init(project=args.wandb_project, name=args.wandb_run_name or None)
            wandb.config.update(vars(args))
        except Exception as e:
            logger.warning("W&B init failed: %s", e)
            args.wandb = False

    train_users, train_items, train_ratings = users[train_idx], items[train_idx], ratings[train_idx]
    model.train()
    for it in range(args.max_iters):
        optimizer.zero_grad()
        u, i, r = get_batch(train_users, train_items, train_ratings, args.batch_size, args.device)
        loss = mse_loss(model(u, i), r)
        loss.backward()
        optimizer.step()

        if (it + 1) % args.log_interval == 0:
            logger.info("iter %d  train_loss %.4f", it + 1, loss.item())
            if args.wandb:
                try:
                    wandb.log({"train/loss": loss.item()}, step=it + 1)
                except Exception as e:
                    logger.warning("W&B log failed: %s", e)

        if len(valid_idx) and (it + 1) % args.eval_interval == 0:
            val_loss = _eval_loss(model, users[valid_idx], items[valid_idx], ratings[valid_idx],
                                  device, args.batch_size)
            logger.info("iter %d  val_loss %.4f", it + 1, val_loss)
            if args.wandb:
                try:
                    wandb.log({"val/loss": val_loss}, step=it + 1)
                except Exception as e:
                    logger.warning("W&B log failed: %s", e)

    if args.export_embeddings:
        out = Path(args.export_embeddings)
        out.parent.mkdir(parents=True, exist_ok=True)
        np.savez(
            out,
            user_vectors=model.user_embeddings.export_weights(),
            item_vectors=model.item_embeddings.export_weights(),
            user_ids=user_vocab,
            item_ids=item_vocab,
        )
        logger.info("Exported embeddings to %s", out)

    logger.info("Training done at iter %d", args.max_iters)
    return model


if __name__ == "__main__":
    main()
