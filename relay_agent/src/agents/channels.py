# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from dataclasses import dataclass

from ..callgraph.node import CallNode
from ..events.delta_stream import DeltaStream, Signal, SubscriptionGroup


@dataclass
class RunChannels:
    """The live channels of one agent run.

    Every run gets its own set, so concurrent runs of one agent never write
    into each other's nodes.
    """

    reasoning: DeltaStream
    output: DeltaStream
    log: Signal[str]
    call: Signal[CallNode]

    @classmethod
    def fresh(cls, name: str) -> "RunChannels":
        return cls(
            reasoning=DeltaStream(f"{name}.reasoning"),
            output=DeltaStream(f"{name}.output"),
            log=Signal(f"{name}.log"),
            call=Signal(f"{name}.call"),
        )

    @classmethod
    def of_node(cls, node: CallNode) -> "RunChannels":
        return cls(reasoning=node.reasoning, output=node.stream, log=node.log, call=node.call)

    def pipe_into(self, node: CallNode, group: SubscriptionGroup) -> None:
        """Proxy every event into ``node`` until ``group`` is closed."""
        self.reasoning.pipe(node.reasoning, group)
        self.output.pipe(node.stream, group)
        group.forward(self.log, node.log)
        group.forward(self.call, node.call)
