"""
Tests for the decision sources.
"""

import threading

import numpy as np
import pytest
import torch
from torch import nn

from goselfplay.data import PASS, GoState, num_actions
from goselfplay.self_play import (
    DirectPredictAgent,
    FirstLegalAgent,
    MCTSAgent,
    ModelProtocol,
    RandomAgent,
    SelfPlayConfig,
    TorchModel,
    UniformModel,
    create_agent,
)
from goselfplay.self_play.agents import mask_policy, sample_action
from goselfplay.self_play.config import MCTSConfig


class PeakedModel:
    """Puts all probability on one action."""

    def __init__(self, action: int):
        self.action = action

    def predict(self, features):
        policy = np.zeros(num_actions(features.shape[-1]), dtype=np.float32)
        policy[self.action] = 1.0
        return policy, 0.0


class TinyNet(nn.Module):
    def __init__(self, size: int):
        super().__init__()
        self.policy = nn.Linear(12 * size * size, size * size + 1)
        self.value = nn.Linear(12 * size * size, 1)

    def forward(self, x):
        flat = x.flatten(1)
        return self.policy(flat), torch.tanh(self.value(flat))


class TestModels:
    """Tests for model adapters."""

    def test_uniform_model(self):
        """Uniform model spreads probability evenly and returns a neutral value."""
        features = GoState(5).extract_features().extract()
        policy, value = UniformModel().predict(features)
        assert policy.shape == (26,)
        assert policy.sum() == pytest.approx(1.0)
        assert value == 0.0

    def test_models_satisfy_protocol(self):
        """Bundled models implement ModelProtocol."""
        assert isinstance(UniformModel(), ModelProtocol)
        assert isinstance(TorchModel(TinyNet(5)), ModelProtocol)

    def test_torch_model(self):
        """TorchModel returns a normalized policy and a bounded value."""
        torch.manual_seed(0)
        model = TorchModel(TinyNet(5))
        features = GoState(5).extract_features().extract()
        policy, value = model.predict(features)

        assert policy.shape == (26,)
        assert policy.sum() == pytest.approx(1.0, abs=1e-5)
        assert -1.0 <= value <= 1.0


class TestPolicyHelpers:
    """Tests for masking and sampling."""

    def test_mask_policy_zeroes_illegal(self):
        """Masking keeps only legal actions and renormalizes."""
        policy = np.full(26, 1.0 / 26)
        masked = mask_policy(policy, [(0, 0), PASS], 5)
        assert masked[0] == pytest.approx(0.5)
        assert masked[25] == pytest.approx(0.5)
        assert masked.sum() == pytest.approx(1.0)

    def test_mask_policy_falls_back_to_uniform(self):
        """All-illegal mass falls back to uniform over legal moves."""
        policy = np.zeros(26)
        policy[7] = 1.0
        masked = mask_policy(policy, [(0, 0), (0, 1)], 5)
        assert masked[0] == pytest.approx(0.5)
        assert masked[1] == pytest.approx(0.5)

    def test_sample_action_greedy(self):
        """Zero temperature picks the argmax."""
        rng = np.random.default_rng(0)
        assert sample_action(np.array([0.1, 0.7, 0.2]), 0, rng) == 1

    def test_sample_action_only_nonzero(self):
        """Sampling never picks zero-weight actions."""
        rng = np.random.default_rng(0)
        for _ in range(20):
            assert sample_action(np.array([0.0, 0.0, 5.0]), 1.0, rng) == 2


class TestSimpleAgents:
    """Tests for the baseline agents."""

    def test_first_legal(self):
        """First-legal agent plays the first open point in row-major order."""
        agent = FirstLegalAgent()
        assert agent.choose_move(GoState(5)) == (0, 0)
        state = GoState.from_moves([(0, 0)], 5)
        assert agent.choose_move(state) == (0, 1)

    def test_first_legal_passes_when_game_over(self):
        """First-legal agent passes on a finished game."""
        state = GoState.from_moves([PASS, PASS], 5)
        assert FirstLegalAgent().choose_move(state) == PASS

    def test_random_agent_plays_legal_moves(self):
        """Random agent only plays legal moves."""
        agent = RandomAgent(np.random.default_rng(0))
        state = GoState(5)
        for _ in range(10):
            move = agent.choose_move(state)
            assert state.apply_move(move)

    def test_random_agent_avoids_own_eye(self):
        """Random agent never fills its own single-point eye."""
        # Black owns (0, 0) as a single-point eye
        state = GoState.from_moves([(0, 1), (4, 4), (1, 0), (4, 3)], 5)
        agent = RandomAgent(np.random.default_rng(0))
        for _ in range(50):
            assert agent.choose_move(state) != (0, 0)


class TestDirectPredictAgent:
    """Tests for direct inference."""

    def test_greedy_follows_policy(self):
        """Greedy direct agent plays the policy peak."""
        agent = DirectPredictAgent(PeakedModel(7), temperature_threshold=0)
        assert agent.choose_move(GoState(5)) == (1, 2)

    def test_illegal_peak_is_masked(self):
        """A policy peak on an occupied point is masked out."""
        state = GoState.from_moves([(1, 2)], 5)
        agent = DirectPredictAgent(PeakedModel(7), temperature_threshold=0)
        move = agent.choose_move(state)
        assert move != (1, 2)
        assert state.is_legal(move)

    def test_sampled_moves_are_legal(self):
        """Sampled direct moves are always legal."""
        agent = DirectPredictAgent(UniformModel(), np.random.default_rng(0))
        state = GoState(5)
        for _ in range(10):
            if state.is_terminal():
                break
            assert state.apply_move(agent.choose_move(state))


class TestMCTSAgent:
    """Tests for tree search."""

    def test_returns_legal_move(self):
        """Search returns a legal move."""
        agent = MCTSAgent(UniformModel(), np.random.default_rng(0), num_simulations=16)
        state = GoState(5)
        move = agent.choose_move(state)
        assert state.is_legal(move)

    def test_does_not_mutate_state(self):
        """Search works on copies and leaves the position untouched."""
        agent = MCTSAgent(UniformModel(), np.random.default_rng(0), num_simulations=16)
        state = GoState.from_moves([(2, 2)], 5)
        board = state.board.copy()
        agent.choose_move(state)
        assert state.ply == 1
        assert np.array_equal(state.board, board)

    def test_cancelled_search_uses_priors(self):
        """With done already set, no simulation runs and the best prior is played."""
        done = threading.Event()
        done.set()
        agent = MCTSAgent(PeakedModel(7), np.random.default_rng(0), num_simulations=1000)
        assert agent.choose_move(GoState(5), done) == (1, 2)

    def test_passes_when_game_over(self):
        """Search passes on a finished game."""
        agent = MCTSAgent(UniformModel(), num_simulations=4)
        assert agent.choose_move(GoState.from_moves([PASS, PASS], 5)) == PASS

    def test_plays_out_to_terminal_positions(self):
        """Search on a nearly finished game reaches terminal leaves without error."""
        agent = MCTSAgent(UniformModel(), np.random.default_rng(0), num_simulations=32)
        state = GoState.from_moves([PASS], 2)
        move = agent.choose_move(state)
        assert state.is_legal(move)


class TestCreateAgent:
    """Tests for the agent factory."""

    def test_mcts(self):
        """Config agent 'mcts' builds an MCTSAgent with the configured simulations."""
        config = SelfPlayConfig(agent="mcts", mcts=MCTSConfig(num_simulations=7))
        agent = create_agent(config)
        assert isinstance(agent, MCTSAgent)
        assert agent.num_simulations == 7
        assert agent.name == "mcts"

    def test_direct(self):
        """Config agent 'direct' builds a DirectPredictAgent."""
        agent = create_agent(SelfPlayConfig(agent="direct"), UniformModel())
        assert isinstance(agent, DirectPredictAgent)
        assert agent.name == "direct"
