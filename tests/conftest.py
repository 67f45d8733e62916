from __future__ import annotations

import pytest

from arhost.runtime.bridge import LuaBridge, new_runtime

COUNTER_PROGRAM = r'''
function ARInit()
  ar.setdata("count", 0)
end

function ARRenderScene()
  if ar.gettapped() == "button" then
    ar.setdata("count", ar.getdata().count + 1)
    ar.cleartap()
  end
  return {
    type = "anchor",
    { type = "box", id = "button", size = 0.1 },
    { type = "text", id = "label", text = tostring(ar.getdata().count) },
  }
end
'''


@pytest.fixture
def lua():
    return new_runtime()


@pytest.fixture
def bridge():
    return LuaBridge()
