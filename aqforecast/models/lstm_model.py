import os
# Set backend to JAX before importing keras
os.environ["KERAS_BACKEND"] = "jax"

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import logging

import numpy as np
import pandas as pd
import keras
from keras import layers, callbacks
from sklearn.preprocessing import StandardScaler

from aqforecast.data.sampler import WindowedSequenceSampler
from aqforecast.data.structs import TimeSeriesData
from aqforecast.ensemble.bootstrap import empirical_interval
from aqforecast.models.base_model import BaseForecaster, ModelState
from aqforecast.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

INTERVAL_CONFIDENCE = 0.95


class CancellationCallback(callbacks.Callback):
    """Stops training between epochs when the run is cancelled."""

    def __init__(self, token: CancellationToken):
        super().__init__()
        self.token = token

    def on_epoch_end(self, epoch, logs=None):
        self.token.raise_if_cancelled(f"LSTM training epoch {epoch + 1}")


@dataclass
class LSTMFit:
    """Trained network with the scaling and the trailing window it forecasts from."""
    network: keras.Model
    scaler: StandardScaler
    columns: List[str]
    window: np.ndarray
    training_loss: float


class LSTMForecaster(BaseForecaster):
    """
    LSTM on windows of the target and regressors (Keras, JAX backend).

    Trained one step ahead from WindowedSequenceSampler batches and
    forecast recursively with the supplied future regressors. Intervals
    come from repeated forward passes with dropout active.
    """

    requires_exogenous = True
    supports_warm_start = True

    def __init__(
        self,
        name: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        random_state: int = 42,
        cancellation: Optional[CancellationToken] = None,
    ):
        """
        Initialize LSTM forecaster.

        Hyperparameters:
            lookback: Input window length
            step: Stride inside the window
            units: LSTM hidden size
            dropout: Dropout rate (also drives the forecast interval)
            batch_size: Training batch size
            epochs: Max training epochs for a fresh fit
            refit_epochs: Max epochs when continuing training
            learning_rate: Adam learning rate
            patience: Early stopping patience
            validation_fraction: Trailing share of rows held out for early stopping
            interval_passes: Stochastic forward passes for the interval
        """
        super().__init__(name, hyperparameters, random_state)
        self.cancellation = cancellation

    @property
    def model_type(self) -> str:
        return "lstm"

    def defaults(self) -> Dict[str, Any]:
        return {
            "lookback": 72,
            "step": 1,
            "units": 32,
            "dropout": 0.2,
            "batch_size": 32,
            "epochs": 10,
            "refit_epochs": 3,
            "learning_rate": 0.001,
            "patience": 3,
            "validation_fraction": 0.1,
            "interval_passes": 100,
        }

    def _build_model(self, window_length: int, n_channels: int) -> keras.Model:
        """Build Keras LSTM model."""
        model = keras.Sequential()
        model.add(layers.Input(shape=(window_length, n_channels)))
        model.add(layers.LSTM(self.hyperparameters["units"]))
        model.add(layers.Dropout(self.hyperparameters["dropout"]))
        model.add(layers.Dense(1))

        optimizer = keras.optimizers.Adam(learning_rate=self.hyperparameters["learning_rate"])
        model.compile(optimizer=optimizer, loss="mse")
        return model

    def _samplers(
        self, data: np.ndarray, rng: np.random.Generator
    ) -> Tuple[WindowedSequenceSampler, Optional[WindowedSequenceSampler]]:
        """
        Shuffled training sampler over the leading rows and a sequential
        validation sampler over the trailing `validation_fraction` rows.

        The validation sampler yields all of its rows in one batch, so every
        epoch's val_loss is computed over the same rows.
        """
        lookback = self.hyperparameters["lookback"]
        step = self.hyperparameters["step"]
        batch_size = self.hyperparameters["batch_size"]

        n_val = int(len(data) * self.hyperparameters["validation_fraction"])
        split = len(data) - n_val
        if n_val == 0 or split - 1 < lookback:
            train = WindowedSequenceSampler(
                data, lookback, step=step, batch_size=batch_size, shuffle=True, rng=rng,
            )
            return train, None

        train = WindowedSequenceSampler(
            data, lookback, step=step, batch_size=batch_size,
            shuffle=True, max_index=split - 1, rng=rng,
        )
        validation = WindowedSequenceSampler(
            data, lookback, step=step, batch_size=n_val, min_index=split - lookback,
        )
        return train, validation

    def _train(
        self,
        network: Optional[keras.Model],
        history: TimeSeriesData,
        scaler: StandardScaler,
        epochs: int,
    ) -> LSTMFit:
        frame = history.to_frame()
        data = scaler.transform(frame.to_numpy(dtype=float)).astype(np.float32)
        lookback = self.hyperparameters["lookback"]
        train_sampler, validation = self._samplers(data, np.random.default_rng(self.random_state))

        if network is None:
            network = self._build_model(train_sampler.window_length, train_sampler.n_channels)

        fit_callbacks = [
            callbacks.EarlyStopping(
                monitor="val_loss" if validation is not None else "loss",
                patience=self.hyperparameters["patience"],
                restore_best_weights=True,
            )
        ]
        if self.cancellation is not None:
            fit_callbacks.append(CancellationCallback(self.cancellation))

        result = network.fit(
            train_sampler.batches(),
            steps_per_epoch=train_sampler.steps_per_epoch,
            validation_data=validation.batches() if validation is not None else None,
            validation_steps=validation.steps_per_epoch if validation is not None else None,
            epochs=epochs,
            callbacks=fit_callbacks,
            verbose=0,
        )
        loss = float(result.history["loss"][-1])
        logger.debug(f"{self.name}: trained {len(result.history['loss'])} epoch(s), loss {loss:.4f}")

        return LSTMFit(
            network=network,
            scaler=scaler,
            columns=frame.columns.tolist(),
            window=data[-lookback:],
            training_loss=loss,
        )

    def _fit(self, history: TimeSeriesData) -> Any:
        keras.utils.set_random_seed(self.random_state)
        scaler = StandardScaler().fit(history.to_frame().to_numpy(dtype=float))
        return self._train(None, history, scaler, self.hyperparameters["epochs"])

    def _refit(self, state: ModelState, history: TimeSeriesData) -> Any:
        previous: LSTMFit = state.model_object
        keras.utils.set_random_seed(self.random_state)
        network = keras.models.clone_model(previous.network)
        network.set_weights(previous.network.get_weights())
        network.compile(
            optimizer=keras.optimizers.Adam(learning_rate=self.hyperparameters["learning_rate"]),
            loss="mse",
        )
        return self._train(network, history, previous.scaler, self.hyperparameters["refit_epochs"])

    def _scaled_future(self, fitted: LSTMFit, exogenous: pd.DataFrame) -> np.ndarray:
        # Target column is a placeholder; it is overwritten by the recursion
        raw = np.column_stack([np.zeros(len(exogenous)), exogenous.to_numpy(dtype=float)])
        return fitted.scaler.transform(raw).astype(np.float32)

    def _recurse(self, fitted: LSTMFit, future: np.ndarray, paths: int, training: bool) -> np.ndarray:
        """Run `paths` recursive forecasts in one batch; returns scaled targets (paths, horizon)."""
        step = self.hyperparameters["step"]
        horizon = len(future)
        buffers = np.repeat(fitted.window[np.newaxis], paths, axis=0)
        outputs = np.empty((paths, horizon), dtype=np.float32)
        for h in range(horizon):
            window = buffers[:, -self.hyperparameters["lookback"]::step]
            values = np.asarray(fitted.network(window, training=training)).reshape(paths)
            outputs[:, h] = values
            row = np.repeat(future[h][np.newaxis], paths, axis=0)
            row[:, 0] = values
            buffers = np.concatenate([buffers[:, 1:], row[:, np.newaxis]], axis=1)
        return outputs

    def _unscale_target(self, fitted: LSTMFit, values: np.ndarray) -> np.ndarray:
        return values * fitted.scaler.scale_[0] + fitted.scaler.mean_[0]

    def _predict(
        self,
        state: ModelState,
        horizon: int,
        exogenous: Optional[pd.DataFrame],
    ) -> Dict[str, Optional[np.ndarray]]:
        fitted: LSTMFit = state.model_object
        future = self._scaled_future(fitted, exogenous)

        point = self._unscale_target(fitted, self._recurse(fitted, future, 1, training=False)[0])
        output = {"point": point}

        passes = self.hyperparameters["interval_passes"]
        if passes > 1 and self.hyperparameters["dropout"] > 0:
            samples = self._unscale_target(fitted, self._recurse(fitted, future, passes, training=True))
            output["lower"], output["upper"] = empirical_interval(samples, INTERVAL_CONFIDENCE)
        return output
