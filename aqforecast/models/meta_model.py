"""
XGBoost meta-model over base forecasts, with Optuna grid search,
backward feature pruning and SHAP explainability.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

import numpy as np
import pandas as pd
import xgboost as xgb
import optuna
import shap

from aqforecast.data.structs import ForecastResult, StackingTable
from aqforecast.evaluation.metrics import ase, mape
from aqforecast.utils.error_handling import NotComputableError

logger = logging.getLogger(__name__)

DEFAULT_PARAM_GRID = {
    "n_estimators": [50, 100, 300],
    "max_depth": [1, 2, 3],
    "learning_rate": [0.01, 0.05, 0.1],
}


def build_regressor(params: Dict[str, Any], random_state: int = 42, n_jobs: int = 1) -> xgb.XGBRegressor:
    """XGBoost regressor with the meta-model objective and the given grid parameters."""
    return xgb.XGBRegressor(
        objective="reg:squarederror",
        random_state=random_state,
        n_jobs=n_jobs,
        **params,
    )


def _safe_mape(predicted: np.ndarray, actual: np.ndarray) -> float:
    try:
        return mape(predicted, actual)
    except NotComputableError:
        return float("inf")


class MetaModel:
    """
    Fitted stacking regressor mapping base-model forecasts to the target.
    """

    def __init__(self, regressor: xgb.XGBRegressor, feature_names: List[str], params: Dict[str, Any]):
        self.regressor = regressor
        self.feature_names = feature_names
        self.params = params
        self._explainer: Optional[shap.Explainer] = None
        # For tree models, TreeExplainer is fast
        try:
            self._explainer = shap.TreeExplainer(regressor)
        except Exception as e:
            logger.warning(f"Could not initialize SHAP explainer: {e}")

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    def _align(self, features: pd.DataFrame) -> pd.DataFrame:
        missing = [c for c in self.feature_names if c not in features.columns]
        if missing:
            raise ValueError(f"Features missing base-model columns {missing}")
        return features[self.feature_names]

    def predict(self, features: pd.DataFrame) -> np.ndarray:
        """Predict one value per row of base-model forecasts."""
        return np.asarray(self.regressor.predict(self._align(features)), dtype=float)

    def predict_row(self, row: Dict[str, float]) -> float:
        """Predict a single step from a mapping of model name to forecast."""
        return float(self.predict(pd.DataFrame([row]))[0])

    def predict_forecast(self, features: pd.DataFrame) -> ForecastResult:
        """Point forecast indexed like `features`."""
        return ForecastResult(index=features.index, point=self.predict(features), model_name="meta")

    def get_feature_importance(self, importance_type: str = "gain") -> Dict[str, float]:
        """
        Get feature importance.

        Args:
            importance_type: 'weight', 'gain', 'cover', 'total_gain', 'total_cover'
        """
        scores = self.regressor.get_booster().get_score(importance_type=importance_type)
        # Base models never used in a split have zero importance
        return {name: float(scores.get(name, 0.0)) for name in self.feature_names}

    def get_shap_values(self, features: pd.DataFrame) -> np.ndarray:
        """Calculate SHAP values for the given rows."""
        if self._explainer is None:
            raise ValueError("SHAP explainer not initialized")
        return self._explainer.shap_values(self._align(features))


@dataclass
class GridSearchResult:
    """Winning hyperparameters and the score of every candidate."""
    best_params: Dict[str, Any]
    best_ase: float
    best_mape: float
    trials: pd.DataFrame


@dataclass
class PruningReport:
    """Outcome of greedy backward elimination of base-model columns."""
    kept: List[str]
    dropped: List[str]
    baseline_ase: float
    final_ase: float
    steps: List[Dict[str, Any]] = field(default_factory=list)


class MetaModelTrainer:
    """
    Selects, fits and prunes the XGBoost meta-model.

    Candidates are fit on the StackingTable (walk-forward validation
    forecasts) and scored on the disjoint test window.
    """

    def __init__(
        self,
        param_grid: Optional[Dict[str, List[Any]]] = None,
        random_state: int = 42,
    ):
        """
        Args:
            param_grid: Candidate values per hyperparameter
            random_state: Seed for XGBoost and the Optuna sampler
        """
        self.param_grid = {k: list(v) for k, v in (param_grid or DEFAULT_PARAM_GRID).items()}
        self.random_state = random_state

    @property
    def n_candidates(self) -> int:
        return int(np.prod([len(v) for v in self.param_grid.values()]))

    def fit(self, table: StackingTable, params: Dict[str, Any]) -> MetaModel:
        """Fit the meta-model on every row of the stacking table."""
        regressor = build_regressor(params, self.random_state)
        regressor.fit(table.features, table.target.to_numpy(), verbose=False)
        return MetaModel(regressor, table.model_columns, dict(params))

    def _score(
        self,
        table: StackingTable,
        params: Dict[str, Any],
        test_features: pd.DataFrame,
        test_actual: pd.Series,
    ):
        model = self.fit(table, params)
        predicted = model.predict(test_features)
        actual = test_actual.to_numpy(dtype=float)
        return ase(predicted, actual), _safe_mape(predicted, actual)

    def grid_search(
        self,
        table: StackingTable,
        test_features: pd.DataFrame,
        test_actual: pd.Series,
    ) -> GridSearchResult:
        """
        Exhaustive search over the parameter grid.

        Args:
            table: Stacking table used to fit every candidate
            test_features: Base-model forecasts over the test window
            test_actual: Observed target over the test window

        Returns:
            GridSearchResult with the minimum-ASE candidate (ties by lower MAPE)
        """
        def objective(trial):
            params = {
                name: trial.suggest_categorical(name, values)
                for name, values in self.param_grid.items()
            }
            test_ase, test_mape = self._score(table, params, test_features, test_actual)
            trial.set_user_attr("mape", test_mape)
            return test_ase

        sampler = optuna.samplers.GridSampler(self.param_grid, seed=self.random_state)
        study = optuna.create_study(direction="minimize", sampler=sampler)
        study.optimize(objective, n_trials=self.n_candidates)

        rows = []
        for trial in study.trials:
            if trial.state != optuna.trial.TrialState.COMPLETE:
                continue
            rows.append({**trial.params, "ase": trial.value, "mape": trial.user_attrs["mape"]})
        trials = pd.DataFrame(rows).sort_values(["ase", "mape"], kind="mergesort").reset_index(drop=True)

        best = trials.iloc[0]
        best_params = {name: _native(trials.at[0, name]) for name in self.param_grid}
        logger.info(
            f"Meta-model grid search over {len(trials)} candidates: best {best_params} "
            f"(ASE {best['ase']:.4f}, MAPE {best['mape']:.2f})"
        )
        return GridSearchResult(
            best_params=best_params,
            best_ase=float(best["ase"]),
            best_mape=float(best["mape"]),
            trials=trials,
        )

    def evaluate_feature_pruning(
        self,
        table: StackingTable,
        params: Dict[str, Any],
        test_features: pd.DataFrame,
        test_actual: pd.Series,
    ) -> PruningReport:
        """
        Greedy backward elimination: repeatedly drop the base model whose
        removal gives the lowest test ASE, as long as that ASE does not
        exceed the current one. At least one base model is always kept.
        """
        kept = list(table.model_columns)
        current, _ = self._score(table, params, test_features, test_actual)
        baseline = current
        dropped: List[str] = []
        steps = []

        while len(kept) > 1:
            candidates = []
            for name in kept:
                remaining = [c for c in kept if c != name]
                score, _ = self._score(
                    table.select_models(remaining), params, test_features[remaining], test_actual
                )
                candidates.append((score, name))
            best_score, best_name = min(candidates)
            if best_score > current:
                break
            kept.remove(best_name)
            dropped.append(best_name)
            steps.append({"dropped": best_name, "ase": best_score})
            logger.info(f"Pruning: dropped {best_name} (test ASE {current:.4f} -> {best_score:.4f})")
            current = best_score

        return PruningReport(
            kept=kept, dropped=dropped, baseline_ase=baseline, final_ase=current, steps=steps,
        )


def _native(value: Any) -> Any:
    """Convert numpy scalars from a DataFrame row back to Python types."""
    return value.item() if isinstance(value, np.generic) else value

