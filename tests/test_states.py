from utils.states import state_code


def test_state_code():
    assert state_code("Vermont") == "VT"
    assert state_code("new york") == "NY"
    assert state_code("tx") == "TX"
    assert state_code("Atlantis") == "Atlantis"
