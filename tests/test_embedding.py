"""Tests for the Embedding lookup layer and its scatter-add backward."""

import numpy as np
import pytest
import torch

from embedlab.errors import IndexOutOfRange, InvalidConfiguration, ShapeMismatch
from embedlab.model.components.embedding import Embedding, embedding_backward


@pytest.fixture
def emb():
    torch.manual_seed(0)
    return Embedding(5, 3)


class TestConstruction:
    def test_weight_shape_and_trainable(self, emb):
        assert emb.weight.shape == (5, 3)
        assert emb.weight.requires_grad
        assert [name for name, _ in emb.named_parameters()] == ["weight"]

    def test_default_uniform_range(self):
        e = Embedding(1000, 8)
        assert e.weight.min().item() >= -0.05
        assert e.weight.max().item() < 0.05

    def test_custom_uniform_range(self):
        e = Embedding(1000, 8, init_range=(0.0, 0.05))
        assert e.weight.min().item() >= 0.0

    def test_normal_policy(self):
        e = Embedding(1000, 8, init="normal")
        assert abs(e.weight.mean().item()) < 0.01
        assert 0.01 < e.weight.std().item() < 0.03

    def test_callable_policy(self):
        e = Embedding(4, 2, init=torch.nn.init.ones_)
        assert torch.equal(e.weight.detach(), torch.ones(4, 2))

    @pytest.mark.parametrize("num_embeddings, embedding_dim", [(0, 3), (5, 0), (-1, 3), (5, -2)])
    def test_non_positive_sizes_rejected(self, num_embeddings, embedding_dim):
        with pytest.raises(InvalidConfiguration):
            Embedding(num_embeddings, embedding_dim)

    def test_non_integer_size_rejected(self):
        with pytest.raises(InvalidConfiguration):
            Embedding(2.5, 3)

    def test_unknown_policy_rejected(self):
        with pytest.raises(InvalidConfiguration):
            Embedding(5, 3, init="xavier")

    def test_empty_init_range_rejected(self):
        with pytest.raises(InvalidConfiguration):
            Embedding(5, 3, init_range=(0.05, 0.05))

    def test_invalid_configuration_is_value_error(self):
        with pytest.raises(ValueError):
            Embedding(0, 3)


class TestLookup:
    def test_rows_match_weight(self, emb):
        indices = [3, 0, 4, 1]
        out = emb.lookup(indices)
        for k, i in enumerate(indices):
            assert torch.equal(out[k], emb.weight[i])

    def test_output_shape(self, emb):
        out = emb([0, 1, 2, 3, 4, 4, 4])
        assert out.shape == (7, 3)

    def test_repeated_indices_identical(self, emb):
        out = emb([0, 2, 2, 4])
        assert out.shape == (4, 3)
        assert torch.equal(out[1], out[2])

    def test_deterministic(self, emb):
        assert torch.equal(emb([1, 3, 1]), emb([1, 3, 1]))

    def test_accepts_tensor_and_numpy(self, emb):
        expected = emb([0, 4])
        assert torch.equal(emb(torch.tensor([0, 4])), expected)
        assert torch.equal(emb(np.array([0, 4], dtype=np.int32)), expected)

    def test_boundary_indices(self, emb):
        out = emb([0, 4])
        assert torch.equal(out[0], emb.weight[0])
        assert torch.equal(out[1], emb.weight[4])

    @pytest.mark.parametrize("bad", [5, -1, 100])
    def test_out_of_range(self, emb, bad):
        with pytest.raises(IndexOutOfRange) as excinfo:
            emb([0, bad, 1])
        assert excinfo.value.index == bad
        assert excinfo.value.num_embeddings == 5

    def test_out_of_range_is_index_error(self, emb):
        with pytest.raises(IndexError):
            emb([5])

    def test_float_indices_rejected(self, emb):
        with pytest.raises(TypeError):
            emb(torch.tensor([0.0, 1.0]))

    def test_bool_indices_rejected(self, emb):
        with pytest.raises(TypeError):
            emb(torch.tensor([True, False]))

    def test_empty_batch(self, emb):
        out = emb([])
        assert out.shape == (0, 3)

    def test_batched_2d_indices(self, emb):
        idx = torch.tensor([[0, 1, 2], [2, 3, 4]])
        out = emb(idx)
        assert out.shape == (2, 3, 3)
        assert torch.equal(out[1, 0], emb.weight[2])

    def test_lookup_does_not_change_weight(self, emb):
        before = emb.weight.detach().clone()
        emb([0, 1, 1])
        with pytest.raises(IndexOutOfRange):
            emb([1, 7])
        assert torch.equal(emb.weight.detach(), before)
        assert emb.weight.shape == (5, 3)

    def test_export_weights_is_copy(self, emb):
        exported = emb.export_weights()
        assert isinstance(exported, np.ndarray)
        assert exported.shape == (5, 3)
        exported[0, 0] = 123.0
        assert emb.weight[0, 0].item() != 123.0


class TestBackward:
    def test_scatter_add_example(self):
        indices = [0, 2, 2, 4]
        grad = torch.tensor(
            [[1.0, 1.0, 1.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
        )
        gw = embedding_backward(indices, grad, num_embeddings=5, embedding_dim=3)
        assert gw.shape == (5, 3)
        assert gw[0].tolist() == [1.0, 1.0, 1.0]
        assert gw[2].tolist() == [1.0, 1.0, 0.0]
        assert gw[4].tolist() == [0.0, 0.0, 1.0]
        assert gw[1].tolist() == [0.0, 0.0, 0.0]
        assert gw[3].tolist() == [0.0, 0.0, 0.0]

    def test_repeated_index_sums(self):
        g1 = torch.tensor([0.5, -1.0])
        g2 = torch.tensor([2.0, 3.0])
        gw = embedding_backward([1, 1], torch.stack([g1, g2]), 3, 2)
        assert torch.allclose(gw[1], g1 + g2)
        assert torch.count_nonzero(gw[0]) == 0
        assert torch.count_nonzero(gw[2]) == 0

    def test_shape_mismatch(self):
        with pytest.raises(ShapeMismatch) as excinfo:
            embedding_backward([0, 1, 2], torch.ones(2, 3), 5, 3)
        assert excinfo.value.expected == (3, 3)
        assert excinfo.value.actual == (2, 3)

    def test_wrong_embedding_dim(self):
        with pytest.raises(ShapeMismatch):
            embedding_backward([0, 1], torch.ones(2, 4), 5, 3)

    def test_out_of_range_index(self):
        with pytest.raises(IndexOutOfRange):
            embedding_backward([0, 5], torch.ones(2, 3), 5, 3)

    def test_2d_indices(self):
        idx = torch.tensor([[0, 1], [1, 1]])
        gw = embedding_backward(idx, torch.ones(2, 2, 3), 3, 3)
        assert gw[1].tolist() == [3.0, 3.0, 3.0]
        assert gw[0].tolist() == [1.0, 1.0, 1.0]


class TestAutograd:
    def test_end_to_end_gradient(self):
        torch.manual_seed(0)
        emb = Embedding(5, 3)
        out = emb.lookup([0, 2, 2, 4])
        assert torch.equal(out[1], out[2])
        upstream = torch.tensor(
            [[1.0, 1.0, 1.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
        )
        out.backward(upstream)
        expected = torch.tensor(
            [[1.0, 1.0, 1.0], [0.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 1.0]]
        )
        assert torch.equal(emb.weight.grad, expected)

    def test_matches_reference_indexing_gradient(self):
        torch.manual_seed(1)
        emb = Embedding(7, 4, dtype=torch.float64)
        idx = torch.tensor([[6, 0, 6], [3, 3, 3]])
        upstream = torch.randn(2, 3, 4, dtype=torch.float64)

        emb(idx).backward(upstream)
        ref_weight = emb.weight.detach().clone().requires_grad_(True)
        ref_weight[idx].backward(upstream)
        assert torch.allclose(emb.weight.grad, ref_weight.grad)

    def test_gradcheck(self):
        weight = torch.randn(4, 2, dtype=torch.float64, requires_grad=True)
        idx = torch.tensor([0, 3, 3, 1])
        from embedlab.model.components.embedding import EmbeddingLookup

        assert torch.autograd.gradcheck(lambda w: EmbeddingLookup.apply(w, idx), (weight,))

    def test_optimizer_updates_only_looked_up_rows(self):
        torch.manual_seed(0)
        emb = Embedding(5, 3)
        before = emb.weight.detach().clone()
        opt = torch.optim.SGD(emb.parameters(), lr=0.1)
        emb([1, 1, 3]).sum().backward()
        opt.step()
        after = emb.weight.detach()
        assert torch.allclose(after[1], before[1] - 0.2)
        assert torch.allclose(after[3], before[3] - 0.1)
        for row in (0, 2, 4):
            assert torch.equal(after[row], before[row])
        assert after.shape == (5, 3)
