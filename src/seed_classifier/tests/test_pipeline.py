import pytest

from seed_classifier.config import Config
from seed_classifier.evaluator import Evaluator
from seed_classifier.exceptions import ConfigurationError
from seed_classifier.hyper_tuner import GridSearch, select_best
from seed_classifier.metrics import get_metrics
from seed_classifier.model_trainer import ModelTrainer
from seed_classifier.models import KNNSpec
from seed_classifier.pipeline import PipelineRunner
from seed_classifier.splitter import Resampler, Splitter
from seed_classifier.workers import WorkerPool


def test_end_to_end_grid_selection_and_evaluation(small_df, prep_kwargs):
    split = Splitter(0.7, random_state=42).split(small_df, "target")
    assert len(split.train) == 21 and len(split.test) == 9

    folds = Resampler(5, random_state=42).split(split.train, "target")
    grid = {"neighbors": [1, 5], "weight_func": ["rectangular", "triangular"], "dist_power": [2]}
    metrics = get_metrics(["accuracy", "roc_auc", "kappa"])
    result = GridSearch(metrics, grid=grid, pool=WorkerPool(n_jobs=1)).search(
        KNNSpec(), split.train, folds, prep_kwargs
    )

    fold_scores = result.to_frame().query("metric == 'accuracy'")
    assert len(fold_scores) == 4 * 5

    best = select_best(result, "accuracy")
    assert best in list(result.configs.values())

    final = ModelTrainer(KNNSpec(), best, prep_kwargs).fit_final(split.train)
    prediction = final.predict(split.test)
    _, y_test = final.preprocessor.transform(split.test)
    report = Evaluator(save_plots=False).evaluate(y_test, prediction, final.class_names)

    assert 0.0 <= report.metrics["accuracy"] <= 1.0
    test_counts = y_test.astype(str).value_counts()
    for cls in final.class_names:
        assert report.confusion.loc[cls].sum() == test_counts.get(cls, 0)
    assert report.confusion.to_numpy().sum() == 9


def _config(tmp_path, csv_path, **overrides):
    cfg = {
        "data": {
            "path": str(csv_path),
            "target_col": "target",
            "class_names": ["Kama", "Rosa", "Canadian"],
            "label_start": 1,
        },
        "explore": {"enabled": True},
        "preprocessing": {"corr_threshold": 0.9},
        "validation": {
            "train_fraction": 0.7,
            "n_splits": 3,
            "random_state": 0,
            "n_jobs": 1,
            "select_metric": "accuracy",
            "metrics": ["accuracy", "roc_auc", "kappa"],
        },
        "models": {
            "knn": {
                "strategy": "grid",
                "grid": {"neighbors": [1, 3], "weight_func": ["inv"], "dist_power": [2]},
            },
            "mlp": {"strategy": "bayes", "n_initial": 2, "n_iter": 1, "no_improve": None},
        },
        "output": {
            "artifacts_dir": str(tmp_path / "artifacts"),
            "metrics_dir": str(tmp_path / "artifacts" / "metrics"),
            "model_dir": str(tmp_path / "artifacts" / "models"),
            "save_plots": True,
        },
    }
    cfg.update(overrides)
    return Config.from_dict(cfg)


def test_pipeline_runner_end_to_end(tmp_path, medium_df):
    csv_path = tmp_path / "seeds.csv"
    medium_df.to_csv(csv_path, index=False)

    runner = PipelineRunner(config=_config(tmp_path, csv_path))
    reports = runner.run()

    assert set(reports) == {"knn", "mlp"}
    for name, report in reports.items():
        assert 0.0 <= report.metrics["accuracy"] <= 1.0
        assert report.confusion.to_numpy().sum() == 45
        assert (tmp_path / "artifacts" / "metrics" / f"{name}_test_metrics.json").exists()
        assert (tmp_path / "artifacts" / "models" / f"{name}.joblib").exists()
    assert (tmp_path / "artifacts" / "eda" / "correlation_heatmap.png").exists()
    assert runner.tuners["mlp"].result_.n_attempts == 3 * 3


def test_pipeline_runner_skips_disabled_models(tmp_path, medium_df):
    csv_path = tmp_path / "seeds.csv"
    medium_df.to_csv(csv_path, index=False)
    cfg = _config(tmp_path, csv_path)
    cfg.models["mlp"]["enabled"] = False
    cfg.output["save_plots"] = False
    cfg.explore["enabled"] = False

    reports = PipelineRunner(config=cfg).run()
    assert set(reports) == {"knn"}


def test_pipeline_runner_rejects_select_metric_outside_metrics(tmp_path, medium_df):
    csv_path = tmp_path / "seeds.csv"
    medium_df.to_csv(csv_path, index=False)
    cfg = _config(tmp_path, csv_path)
    cfg.validation["select_metric"] = "log_loss"
    with pytest.raises(ConfigurationError):
        PipelineRunner(config=cfg).run()


def test_config_from_yaml_and_validation(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(
        "data: {path: x.csv, target_col: target}\n"
        "preprocessing: {}\n"
        "validation: {}\n"
        "models: {knn: {}}\n"
        "output: {}\n"
    )
    cfg = Config.from_yaml(str(path))
    assert cfg.data["target_col"] == "target"
    assert cfg.explore == {}

    path.write_text("data: {path: x.csv, target_col: target}\n")
    with pytest.raises(ConfigurationError, match="Missing"):
        Config.from_yaml(str(path))

    with pytest.raises(ConfigurationError):
        PipelineRunner()
