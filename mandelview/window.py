"""Interactive pygame front-end for a :class:`RenderEngine`."""

from __future__ import annotations

from typing import Callable

import pygame

from .renderer import RenderEngine
from .view import KEY_BINDINGS, Command, apply_command

TITLE = "Mandelbrot"

PYGAME_KEYS = {
    pygame.K_w: KEY_BINDINGS["w"],
    pygame.K_a: KEY_BINDINGS["a"],
    pygame.K_s: KEY_BINDINGS["s"],
    pygame.K_d: KEY_BINDINGS["d"],
    pygame.K_r: KEY_BINDINGS["r"],
    pygame.K_f: KEY_BINDINGS["f"],
    pygame.K_q: KEY_BINDINGS["q"],
    pygame.K_ESCAPE: KEY_BINDINGS["escape"],
}


def command_for_event(event) -> Command | None:
    """Translate a pygame event into an explorer command, if it is one."""

    if event.type == pygame.QUIT:
        return Command.QUIT
    if event.type == pygame.KEYDOWN:
        return PYGAME_KEYS.get(event.key)
    return None


def _present(screen, buffer: bytearray, size: tuple[int, int]) -> None:
    surface = pygame.image.frombuffer(buffer, size, "RGBA")
    screen.blit(surface, (0, 0))
    pygame.display.flip()


def run_window(engine: RenderEngine, *, log: Callable[..., None] = print, fps: int = 60) -> None:
    """Run the event loop until the window is closed or a quit key is pressed."""

    view = engine.view
    pygame.init()
    try:
        pygame.display.set_caption(TITLE)
        screen = pygame.display.set_mode((view.width, view.height), pygame.RESIZABLE)
        buffer = bytearray(4 * view.width * view.height)
        clock = pygame.time.Clock()
        redraw = True
        running = True

        while running:
            for event in pygame.event.get():
                command = command_for_event(event)
                if command is Command.QUIT:
                    running = False
                    break
                if command is not None:
                    apply_command(view, command)
                    redraw = True
                elif event.type == pygame.VIDEORESIZE:
                    width, height = event.w, event.h
                    if width <= 0 or height <= 0:
                        continue
                    try:
                        screen = pygame.display.set_mode((width, height), pygame.RESIZABLE)
                    except pygame.error:
                        print("Failed to resize surface.")
                        running = False
                        break
                    buffer = bytearray(4 * width * height)
                    view.resize(width, height)
                    log(f"Resized to {width}x{height}")
                    redraw = True
                elif event.type == pygame.VIDEOEXPOSE:
                    redraw = True

            if running and redraw:
                engine.draw(buffer)
                try:
                    _present(screen, buffer, (view.width, view.height))
                except pygame.error as exc:
                    print(f"Failed to present frame: {exc}")
                    running = False
                redraw = False
            clock.tick(fps)
    finally:
        pygame.quit()
