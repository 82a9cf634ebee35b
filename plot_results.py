import argparse
import importlib
import json
import os

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns


def confusion_frame(metrics):
    cm_data = metrics.get("confusion_matrix", {})
    if not cm_data:
        return None
    labels = cm_data["labels"]
    return pd.DataFrame(np.asarray(cm_data["probs"], dtype=float), index=labels, columns=labels)


def plot_confusion_matrix(metrics, output_path="results/confusion_matrix.png", show=True):
    """Generates and saves a confusion probability heatmap."""
    print("Generating confusion matrix plot...")

    df_cm = confusion_frame(metrics)
    if df_cm is None:
        print("No confusion matrix data found in results.")
        return None

    plt.figure(figsize=(12, 10))
    sns.heatmap(df_cm, annot=len(df_cm) <= 20, fmt='.2f', cmap='viridis', vmin=0, vmax=1)
    plt.title(f"Confusion Matrix (Accuracy: {metrics.get('accuracy', 0):.2f}%, "
              f"Top-2: {metrics.get('top2_accuracy', 0):.2f}%)")
    plt.ylabel('True Category')
    plt.xlabel('Response Category')

    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    plt.savefig(output_path)
    print(f"Plot saved to {output_path}")
    if show:
        plt.show()
    return output_path


def main():
    parser = argparse.ArgumentParser(description="Plot the confusion matrix of a finished run.")
    parser.add_argument("--config", default="lvis.config")
    parser.add_argument("--no-show", action="store_true")
    args = parser.parse_args()
    results_file = importlib.import_module(args.config).RESULTS_FILE
    try:
        with open(results_file, 'r') as f:
            metrics = json.load(f)
    except FileNotFoundError:
        print(f"Error: Results file not found at {results_file}")
        print("Please run 'python run_lvis.py' first.")
        return

    plot_confusion_matrix(metrics, show=not args.no_show)


if __name__ == "__main__":
    main()
