"""
Text-based flow interface.

Provides a command-line REPL that feeds each line the user types to the
flow orchestrator and prints the response.
"""

from abc import ABC, abstractmethod

from interview_flow.flows.schemas import FlowDefinition
from interview_flow.orchestrator.flow_orchestrator import FlowOrchestrator
from interview_flow.orchestrator.schemas import FlowResponse

EXIT_COMMANDS = ("quit", "exit", "end")


class FlowInterface(ABC):
    """Abstract base class for flow interfaces."""

    @abstractmethod
    async def run(self) -> None:
        """Run the interface until the flow completes or the user leaves."""
        ...

    @abstractmethod
    async def send_message(self, message: str) -> None:
        """
        Send a message to the user.

        Args:
            message: Message to display.
        """
        ...

    @abstractmethod
    async def receive_input(self) -> str:
        """
        Receive input from the user.

        Returns:
            User's input string.
        """
        ...


class TextInterface(FlowInterface):
    """
    Command-line text interface for flows.

    The first call starts the flow without user input; after that every
    line the user enters is one turn.
    """

    def __init__(
        self,
        orchestrator: FlowOrchestrator,
        flow: FlowDefinition,
        session_id: str,
    ) -> None:
        """
        Initialize the text interface.

        Args:
            orchestrator: Flow orchestrator to use.
            flow: Flow to execute.
            session_id: Session to run the flow in.
        """
        self._orchestrator = orchestrator
        self._flow = flow
        self._session_id = session_id

    async def run(self) -> None:
        """Run the interactive session."""
        print("\n" + "=" * 60)
        print(f"Flow: {self._flow.name}")
        if self._flow.goal:
            print(self._flow.goal)
        print("=" * 60 + "\n")

        response = await self._orchestrator.execute_flow(self._flow, self._session_id, "")
        await self._show(response)

        while not response.is_complete:
            user_input = await self.receive_input()

            if user_input.strip().lower() in EXIT_COMMANDS:
                print(f"\nLeaving session {self._session_id}.")
                break

            if user_input.strip():
                response = await self._orchestrator.execute_flow(self._flow, self._session_id, user_input)
                await self._show(response)

    async def _show(self, response: FlowResponse) -> None:
        if response.is_error:
            await self.send_message(f"[{response.error.value if response.error else 'error'}] {response.text}")
        else:
            await self.send_message(f"Interviewer: {response.text}")

    async def send_message(self, message: str) -> None:
        """
        Display a message to the terminal.

        Args:
            message: Message to display.
        """
        print(f"\n{message}\n")

    async def receive_input(self) -> str:
        """
        Get input from the terminal.

        Returns:
            User's input string.
        """
        try:
            return input("You: ")
        except EOFError:
            return "exit"
