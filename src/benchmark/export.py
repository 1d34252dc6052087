"""CSV export of benchmark tables.

Each table is written to its own file named after the run tag
``{repetition}_{fold}_{death_weight}_{variable_subset}``, so concurrent runs
with different tags never write the same file. Files are written to a
temporary sibling and moved into place, which makes re-running a tag
overwrite its previous output atomically.
"""

import logging
import os
from pathlib import Path

import pandas as pd

from config.settings import RunConfig


logger = logging.getLogger(__name__)

# artifact name -> (subdirectory, file prefix)
ARTIFACT_LAYOUT = {
    "roc": ("auc", "roc"),
    "auc": ("auc", "auc"),
    "accuracy": ("acc", "acc"),
    "hl": ("hl", "hl"),
    "hl_bins": ("hl", "hl_bins"),
    "inclusion": ("var_imp", "include_vars"),
    "importance": ("var_imp", "imp"),
    "coefficients": ("var_imp", "lr"),
}


def add_run_tags(df: pd.DataFrame, run_config: RunConfig) -> pd.DataFrame:
    """Append the run identification columns to a table."""
    tagged = df.copy()
    for column, value in run_config.tag_columns().items():
        tagged[column] = value
    return tagged


class ArtifactWriter:
    """Write tagged benchmark tables under an output directory.

    Args:
        output_dir: Root directory for all artifacts
    """

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def path_for(self, artifact: str, run_config: RunConfig) -> Path:
        subdir, prefix = ARTIFACT_LAYOUT[artifact]
        return self.output_dir / subdir / f"{prefix}_{run_config.tag}.csv"

    def write_table(self, artifact: str, df: pd.DataFrame, run_config: RunConfig) -> Path:
        path = self.path_for(artifact, run_config)
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        add_run_tags(df, run_config).to_csv(tmp_path, index=False)
        os.replace(tmp_path, path)
        return path

    def write_all(self, tables: dict[str, pd.DataFrame], run_config: RunConfig) -> dict[str, Path]:
        """Write every table, returning artifact name -> written path.

        Raises:
            KeyError: If a table name has no known output location
        """
        unknown = set(tables) - set(ARTIFACT_LAYOUT)
        if unknown:
            raise KeyError(f"Unknown artifact(s): {sorted(unknown)}")

        paths = {}
        for artifact, df in tables.items():
            paths[artifact] = self.write_table(artifact, df, run_config)
            logger.info(f"  {artifact}: {paths[artifact]}")
        return paths
