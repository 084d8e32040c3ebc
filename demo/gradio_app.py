"""Synacor VM Interactive Demo.

A Gradio web interface for running and inspecting Synacor VM programs.

Usage:
    cd /path/to/synvm
    python demo/gradio_app.py

Features:
    - Write inline programs or upload a binary image
    - Provide scripted input for the `in` instruction
    - See program output and how execution ended (halt or fault)
    - Inspect final registers and stack
    - Step-by-step execution trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from synacor_vm import Console, CycleLimitExceeded, QueuedInput, VirtualMachine


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Hello": """    out 72          ; H
    out 105         ; i
    out 10          ; newline
    halt""",

    "Add and print": """    set r1 48       ; '0'
    add r0 r1 7     ; r0 = '7'
    out r0
    out 10
    halt""",

    "Echo input": """    in r0           ; address 0
    jf r0 12        ; nothing left -> halt
    out r0
    set r0 0
    jmp 0
    halt            ; address 12""",

    "Call and return": """    call 5          ; address 0
    out 10
    halt
    out 42          ; address 5: subroutine
    ret""",

    "Divide by zero": """    mod r0 10 0
    halt""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(program: str, image_file, input_text: str, max_cycles: int) -> tuple:
    """Execute a program and return results.

    Args:
        program: Textual program source (ignored when an image is uploaded)
        image_file: Uploaded binary image path, or None
        input_text: Text fed to `in` instructions
        max_cycles: Maximum execution cycles

    Returns:
        Tuple of (output_text, summary_text, trace_text, registers_text)
    """
    if image_file is None and not program.strip():
        return "", "Error: No program provided", "", ""

    try:
        vm = VirtualMachine(
            console=Console(input=QueuedInput(input_text or "")),
            max_cycles=int(max_cycles),
            trace=True,
        )

        if image_file is not None:
            vm.load_image(Path(image_file))
        else:
            vm.load_source(program)

        try:
            vm.run()
        except CycleLimitExceeded as e:
            runtime_msg = str(e)
        else:
            runtime_msg = None

        # Format summary
        summary = vm.get_summary()
        summary_lines = [
            "EXECUTION SUMMARY",
            "=" * 40,
            f"Cycles: {summary['cycles']}",
            f"Status: {summary['status']}",
            f"PC:     {summary['pc']}",
        ]
        if runtime_msg:
            summary_lines.append(f"\nRuntime: {runtime_msg}")
        if summary["fault"]:
            summary_lines.append(f"\nFault: {summary['fault']}")

        summary_text = "\n".join(summary_lines)

        # Format trace
        trace = vm.trace
        trace_lines = [
            "EXECUTION TRACE",
            "=" * 60,
        ]
        for entry in trace[:200]:  # Limit to 200 entries
            trace_lines.append(f"\n--- Cycle {entry.cycle} (PC={entry.address}) ---")
            trace_lines.append(f"Instruction: {entry.instruction}")
            if entry.decode_result is not None:
                trace_lines.append(f"Decoded Key: {entry.decode_result.key}")
                trace_lines.append(f"Parameters:  {entry.decode_result.params}")
            if entry.error:
                trace_lines.append(f"Fault:       {entry.error}")

            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = []
            for reg in sorted(pre_regs.keys()):
                if pre_regs[reg] != post_regs[reg]:
                    changes.append(f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}")
            if changes:
                trace_lines.append(f"Changes:     {', '.join(changes)}")

        if len(trace) > 200:
            trace_lines.append(f"\n... ({len(trace) - 200} more entries)")

        trace_text = "\n".join(trace_lines)

        # Format registers
        regs = vm.dump_registers()
        reg_lines = [
            "FINAL REGISTERS",
            "=" * 30,
        ]
        for reg in sorted(regs.keys()):
            marker = " *" if regs[reg] != 0 else ""
            reg_lines.append(f"  {reg}: {regs[reg]:>6}{marker}")

        reg_lines.append("")
        reg_lines.append("STACK (top last)")
        reg_lines.append("-" * 30)
        reg_lines.append(f"  {summary['stack']}")

        registers_text = "\n".join(reg_lines)

        return summary["output"], summary_text, trace_text, registers_text

    except Exception as e:
        return "", f"Error: {str(e)}", "", ""


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="Synacor VM Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # Synacor VM

        A virtual machine with 15-bit values in 16-bit memory cells, eight
        registers, an unbounded stack, and 22 instructions.

        **Pipeline**: `fetch -> decode -> key -> registry primitive -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hello",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Hello"],
                    label="Source (numbers, r0-r7, mnemonics)",
                    lines=12,
                    placeholder="set r0 65\nout r0\nhalt"
                )

                image_input = gr.File(
                    label="Or upload a binary image",
                    type="filepath"
                )

                gr.Markdown("### Settings")

                input_text = gr.Textbox(
                    value="",
                    label="Program input",
                    lines=3,
                    placeholder="Characters returned by `in`"
                )
                max_cycles = gr.Slider(
                    minimum=100,
                    maximum=1000000,
                    value=10000,
                    step=100,
                    label="Max Cycles"
                )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                output_text = gr.Textbox(
                    label="Program Output",
                    lines=6,
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=10,
                        interactive=False
                    )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        with gr.Accordion("ISA Reference", open=False):
            gr.Markdown("""
            | Op | Instruction | Effect |
            |----|-------------|--------|
            | 0 | `halt` | stop |
            | 1 | `set a b` | a <- b |
            | 2 | `push a` | push a |
            | 3 | `pop a` | a <- pop |
            | 4 | `eq a b c` | a <- (b == c) |
            | 5 | `gt a b c` | a <- (b > c) |
            | 6 | `jmp a` | jump to a |
            | 7 | `jt a b` | jump to b if a != 0 |
            | 8 | `jf a b` | jump to b if a == 0 |
            | 9 | `add a b c` | a <- (b + c) % 32768 |
            | 10 | `mult a b c` | a <- (b * c) % 32768 |
            | 11 | `mod a b c` | a <- b % c |
            | 12 | `and a b c` | a <- b & c |
            | 13 | `or a b c` | a <- b \\| c |
            | 14 | `not a b` | a <- 15-bit ~b |
            | 15 | `rmem a b` | a <- memory[b] |
            | 16 | `wmem a b` | memory[a] <- b |
            | 17 | `call a` | push next pc, jump to a |
            | 18 | `ret` | jump to pop |
            | 19 | `out a` | print chr(a) |
            | 20 | `in a` | a <- next input char (unchanged if none) |
            | 21 | `noop` | nothing |

            **Values**: 0-32767 literal, 32768-32775 registers r0-r7, higher invalid
            """)

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, image_input, input_text, max_cycles],
            outputs=[output_text, summary_output, trace_output, registers_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
