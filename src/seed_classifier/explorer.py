import os
from typing import Dict

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .utils.logger import get_logger


class DataExplorer:
    """Exploratory statistics and plots for the seed measurements."""

    def __init__(self, output_dir: str = "artifacts", verbose: bool = True):
        self.output_dir = output_dir
        self.verbose = verbose
        self.logger = get_logger(self.__class__.__name__)

    def summarize(self, df: pd.DataFrame, target_col: str) -> Dict[str, pd.DataFrame]:
        features = df.drop(columns=[target_col])
        summary = {
            "describe": features.describe().T,
            "class_counts": df[target_col].value_counts().sort_index().rename("count").to_frame(),
            "class_means": df.groupby(target_col).mean(),
            "correlation": features.corr(method="pearson"),
        }

        if self.verbose:
            counts = summary["class_counts"]["count"].to_dict()
            self.logger.info(f"Class counts: {counts}")
            corr = summary["correlation"].abs()
            pairs = [
                (a, b, corr.loc[a, b])
                for i, a in enumerate(corr.columns)
                for b in corr.columns[i + 1:]
                if corr.loc[a, b] > 0.9
            ]
            for a, b, r in pairs:
                self.logger.info(f"Highly correlated: {a} ~ {b} (|r|={r:.3f})")
        return summary

    def plot(self, df: pd.DataFrame, target_col: str) -> Dict[str, str]:
        """Save a correlation heatmap and per-class boxplots. Returns saved paths."""
        os.makedirs(self.output_dir, exist_ok=True)
        paths: Dict[str, str] = {}

        features = df.drop(columns=[target_col])
        plt.figure(figsize=(7, 6))
        sns.heatmap(features.corr(), annot=True, fmt=".2f", cmap="coolwarm", vmin=-1, vmax=1)
        plt.title("Feature Correlation")
        path = os.path.join(self.output_dir, "correlation_heatmap.png")
        plt.tight_layout()
        plt.savefig(path, dpi=200)
        plt.close()
        paths["correlation"] = path

        long = df.melt(id_vars=target_col, var_name="feature", value_name="value")
        grid = sns.catplot(
            data=long,
            x=target_col,
            y="value",
            col="feature",
            kind="box",
            col_wrap=4,
            sharey=False,
            height=2.5,
        )
        path = os.path.join(self.output_dir, "feature_boxplots.png")
        grid.savefig(path, dpi=200)
        plt.close(grid.figure)
        paths["boxplots"] = path

        if self.verbose:
            self.logger.info(f"Saved exploration plots: {list(paths.values())}")
        return paths
