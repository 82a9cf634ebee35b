"""The seam between the environment and whatever model learns from it.

Layers come in three kinds: INPUT layers are clamped to a feature tensor,
the TARGET layer is clamped to the category pattern while training, and
HIDDEN layers are the model's own business.
"""
from collections import defaultdict
from enum import Enum
from typing import Dict, List, NamedTuple, Tuple

import numpy as np

from .logger import debug, is_verbose


class LayerKind(Enum):
    INPUT = "input"
    HIDDEN = "hidden"
    TARGET = "target"


class Layer(NamedTuple):
    name: str
    kind: LayerKind
    shape: Tuple[int, ...]


class Learner:
    """Capability interface a model exposes to the trial loop."""

    def layers(self) -> List[Layer]:
        raise NotImplementedError

    def apply_external_input(self, layer: str, tensor: np.ndarray) -> None:
        raise NotImplementedError

    def read_activation(self, layer: str) -> np.ndarray:
        raise NotImplementedError


def env_layers(env) -> List[Layer]:
    """One INPUT layer per filter channel plus the TARGET output layer."""
    layers = [Layer(name, LayerKind.INPUT, env.state(name).shape) for name in env.bank.names()]
    layers.append(Layer("Output", LayerKind.TARGET, env.state("Output").shape))
    return layers


def apply_inputs(env, learner: Learner, train: bool = True):
    """Copies the current trial's tensors into the learner's INPUT and TARGET layers."""
    for lay in learner.layers():
        if lay.kind == LayerKind.INPUT or (lay.kind == LayerKind.TARGET and train):
            learner.apply_external_input(lay.name, env.state(lay.name))


class PrototypeLearner(Learner):
    """Running-mean feature prototype per target pattern.

    Training accumulates the clamped input features under the clamped
    target. Recall scores the inputs against every prototype and drives
    the output layer with the similarity-weighted blend of the targets.
    """

    def __init__(self, layers: List[Layer], temperature: float = 0.05):
        self._layers = list(layers)
        self.temperature = temperature
        self.inputs: Dict[str, np.ndarray] = {}
        self.acts: Dict[str, np.ndarray] = {lay.name: np.zeros(lay.shape, dtype=np.float32) for lay in self._layers}
        self.target_name = next(lay.name for lay in self._layers if lay.kind == LayerKind.TARGET)
        self.clamped_target = None
        self.storage: Dict[bytes, list] = defaultdict(lambda: [None, None, 0])

    def layers(self) -> List[Layer]:
        return self._layers

    def apply_external_input(self, layer: str, tensor: np.ndarray) -> None:
        if layer == self.target_name:
            np.copyto(self.acts[layer], tensor)
            self.clamped_target = np.array(tensor, dtype=np.float32)
        else:
            self.inputs[layer] = np.asarray(tensor, dtype=np.float32)

    def read_activation(self, layer: str) -> np.ndarray:
        return self.acts[layer]

    def features(self) -> np.ndarray:
        return np.concatenate([self.inputs[lay.name].ravel() for lay in self._layers if lay.kind == LayerKind.INPUT])

    def learn(self):
        target = self.clamped_target
        if target is None:
            raise ValueError("learn() needs a clamped target; call apply_inputs with train=True first")
        entry = self.storage[target.tobytes()]
        feats = self.features()
        if entry[0] is None:
            entry[0] = target
            entry[1] = np.zeros_like(feats)
        entry[1] += feats
        entry[2] += 1

    def prototypes(self) -> Tuple[np.ndarray, np.ndarray]:
        """(targets, mean features) stacked in a stable order."""
        keys = sorted(self.storage)
        targets = np.stack([self.storage[k][0] for k in keys])
        means = np.stack([self.storage[k][1] / self.storage[k][2] for k in keys])
        return targets, means

    def recall(self) -> np.ndarray:
        out = self.acts[self.target_name]
        if not self.storage:
            out.fill(0)
            return out
        targets, means = self.prototypes()
        feats = self.features()
        norms = np.linalg.norm(means, axis=1) * np.linalg.norm(feats)
        sims = (means @ feats) / np.where(norms > 0, norms, 1.0)
        weights = np.exp((sims - sims.max()) / self.temperature)
        weights /= weights.sum()
        np.copyto(out, np.tensordot(weights, targets, axes=1))
        if is_verbose():
            debug(f"Recall similarities: {np.round(sims, 3).tolist()}")
        return out

    def merge(self, other: "PrototypeLearner"):
        """Sums another learner's accumulated prototypes into this one."""
        for key, (target, feat_sum, n) in other.storage.items():
            entry = self.storage[key]
            if entry[0] is None:
                entry[0] = target
                entry[1] = np.zeros_like(feat_sum)
            entry[1] += feat_sum
            entry[2] += n

    def state_dict(self) -> dict:
        return {key: (t, s, n) for key, (t, s, n) in self.storage.items()}

    def load_state_dict(self, state: dict):
        self.storage.clear()
        for key, (t, s, n) in state.items():
            self.storage[key] = [t, np.array(s), n]


def merge_states(layers: List[Layer], states: List[dict]) -> PrototypeLearner:
    """One learner holding the summed prototypes of several worker state dicts."""
    master = PrototypeLearner(layers)
    if states:
        master.load_state_dict(states[0])
    for state in states[1:]:
        other = PrototypeLearner(layers)
        other.load_state_dict(state)
        master.merge(other)
    return master
