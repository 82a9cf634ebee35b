import argparse
import datetime
import importlib
import json
import multiprocessing as mp
import os
import pickle
import time
import types

import numpy as np
from tqdm import tqdm

from lvis.classify import ConfusionMatrix, EpochStats
from lvis.env import configure, step
from lvis.images import load_catalog
from lvis.learner import PrototypeLearner, apply_inputs, env_layers, merge_states
from lvis.logger import log


def training_worker(args):
    """
    Worker runs its own environment over its shard of the training list and
    returns ONLY the accumulated prototypes and per-epoch error stats.
    """
    position, rank, n_workers, cfg_name, catalog = args
    config = importlib.import_module(cfg_name)
    pid = os.getpid()
    log(f"[Worker PID: {pid}, Rank: {rank}] Starting training")

    env = configure(config, test=False, rank=rank, n_workers=n_workers, catalog=catalog)
    learner = PrototypeLearner(env_layers(env))
    stats = EpochStats()
    n_failed = 0

    total = config.N_EPOCHS * config.N_TRIALS
    for _ in tqdm(range(total), desc=f"  ↳ PID {pid} Training", position=position, leave=False, ncols=100):
        epoch = env.sequencer.counters.epoch.cur
        trial = step(env)
        if trial is None:
            n_failed += 1
            continue
        apply_inputs(env, learner, train=True)
        stats.add(env.out_err(learner.recall()))
        learner.learn()
        if env.counter("epoch")[2]:
            row = stats.end_epoch(epoch)
            log(f"[Rank {rank}] Epoch {epoch}: PctErr {row['pct_err']:.3f}, PctErr2 {row['pct_err2']:.3f}")

    log(f"[Worker PID: {pid}, Rank: {rank}] Finished training ({n_failed} void trials)")
    return learner.layers(), learner.state_dict(), stats.history


def testing_worker(args):
    """Worker scores the merged prototypes on its shard of the test list."""
    position, rank, n_workers, cfg_name, catalog, model_state = args
    config = importlib.import_module(cfg_name)
    pid = os.getpid()
    log(f"[Worker PID: {pid}, Rank: {rank}] Starting testing")

    env = configure(config, test=True, rank=rank, n_workers=n_workers, catalog=catalog)
    learner = PrototypeLearner(env_layers(env))
    learner.load_state_dict(model_state)
    confusion = ConfusionMatrix(catalog.cats)
    stats = EpochStats()

    for _ in tqdm(range(env.sequencer.row.max), desc=f"  ↳ PID {pid} Testing", position=position, leave=False,
                  ncols=100):
        if step(env) is None:
            continue
        apply_inputs(env, learner, train=False)
        res = env.out_err(learner.recall())
        stats.add(res)
        confusion.incr(env.cur_cat_idx, res.best)
    return confusion.counts, stats.n, stats.err_sum, stats.err2_sum


def serializable_config(config):
    out = {}
    for key, value in vars(config).items():
        if not key.startswith('__') and not isinstance(value, types.ModuleType):
            if isinstance(value, np.ndarray):
                out[key] = value.tolist()
            else:
                out[key] = value
    return out


def train(cfg_name, n_workers):
    config = importlib.import_module(cfg_name)
    catalog = load_catalog(config)
    log(f"Spawning {n_workers} workers for training...")
    tasks = [(i + 1, i, n_workers, cfg_name, catalog) for i in range(n_workers)]
    with mp.Pool(processes=n_workers) as pool:
        results = list(tqdm(pool.imap(training_worker, tasks), total=len(tasks), desc="Overall Training Progress",
                            ncols=100))

    log("Merging worker prototypes...")
    layers = results[0][0]
    master = merge_states(layers, [state for _, state, _ in results]).state_dict()
    history = [hist for _, _, hist in results]

    os.makedirs(os.path.dirname(config.MODEL_FILE) or ".", exist_ok=True)
    with open(config.MODEL_FILE, 'wb') as f:
        pickle.dump(master, f)
    log(f"Saved {len(master)} prototypes to {config.MODEL_FILE}")
    return master, history


def test(cfg_name, n_workers, model_state=None):
    config = importlib.import_module(cfg_name)
    catalog = load_catalog(config)
    if model_state is None:
        with open(config.MODEL_FILE, 'rb') as f:
            model_state = pickle.load(f)
    log(f"Spawning {n_workers} workers for testing...")
    tasks = [(i + 1, i, n_workers, cfg_name, catalog, model_state) for i in range(n_workers)]
    with mp.Pool(processes=n_workers) as pool:
        results = list(tqdm(pool.imap(testing_worker, tasks), total=len(tasks), desc="Overall Testing Progress",
                            ncols=100))

    confusion = ConfusionMatrix(catalog.cats)
    n, err_sum, err2_sum = 0, 0.0, 0.0
    for counts, wn, we, we2 in results:
        confusion.counts += counts
        n += wn
        err_sum += we
        err2_sum += we2

    accuracy = (1.0 - err_sum / n) * 100 if n > 0 else 0
    accuracy2 = (1.0 - err2_sum / n) * 100 if n > 0 else 0
    return {
        "accuracy": accuracy,
        "top2_accuracy": accuracy2,
        "total_predictions": n,
        "per_category_accuracy": confusion.accuracy(),
        "confusion_matrix": confusion.to_dict(),
    }


def save_metrics(config, metrics):
    metrics["config"] = serializable_config(config)
    results_path = config.RESULTS_FILE
    os.makedirs(os.path.dirname(results_path) or ".", exist_ok=True)
    with open(results_path, 'w', encoding='utf-8') as f:
        json.dump(metrics, f, indent=4)
    log(f"Saved metrics to {results_path}")


def main():
    parser = argparse.ArgumentParser(description="Train / test the prototype learner on the LVis image pipeline.")
    parser.add_argument("--mode", choices=["train", "test", "both"], default="both")
    parser.add_argument("--config", default="lvis.config", help="config module, e.g. lvis.config_test")
    parser.add_argument("--workers", type=int, default=0, help="worker processes (default: config NUM_WORKERS)")
    args = parser.parse_args()

    mp.set_start_method('spawn', force=True)
    config = importlib.import_module(args.config)
    n_workers = args.workers or min(mp.cpu_count(), config.NUM_WORKERS)
    start_time = time.time()
    log("--- LVis Object Recognition Run ---")

    model_state = None
    if args.mode in ("train", "both"):
        model_state, _ = train(args.config, n_workers)
    if args.mode in ("test", "both"):
        metrics = test(args.config, n_workers, model_state)
        total_duration = str(datetime.timedelta(seconds=time.time() - start_time))
        print("\n" + "=" * 50)
        log("RUN COMPLETE")
        print("=" * 50)
        log(f"Total Execution Time: {total_duration}")
        log(f"Test Accuracy: {metrics['accuracy']:.2f}% (top-2: {metrics['top2_accuracy']:.2f}%)")
        print("=" * 50)
        save_metrics(config, metrics)


if __name__ == "__main__":
    main()
