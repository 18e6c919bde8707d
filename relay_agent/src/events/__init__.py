# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from .delta_stream import Signal, Subscription, SubscriptionGroup, DeltaStream

__all__ = ["Signal", "Subscription", "SubscriptionGroup", "DeltaStream"]
