"""
Shared fixtures: an in-memory rendered page and sample Mods module sources.
"""

import copy
import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mods_core.config import Settings
from mods_core.driver import (
    Session, SET_CONTROL_SCRIPT, CLICK_BUTTON_SCRIPT, INJECT_PROGRAM_SCRIPT
)
from mods_core.exceptions import NavigationTimeoutError
from mods_core.page import RenderedPage
from mods_core.state_reader import READ_STATE_SCRIPT, READ_PROGRAM_SCRIPT
from mods_core.storage import Storage


SLIDER_MODULE = r"""//
// slider
//
(function(){
//
// module globals
//
var mod = {}
//
// name
//
var name = 'slider'
//
// initialization
//
var init = function() {
   mod.value.value = '0.5'
   }
//
// inputs
//
var inputs = {}
//
// outputs
//
var outputs = {
   value:{type:'float',
      event:function(){
         mods.output(mod,'value',parseFloat(mod.value.value))}}}
//
// interface
//
var interface = function(div){
   mod.div = div
   div.appendChild(document.createTextNode('value: '))
   var input = document.createElement('input')
   div.appendChild(input)
   mod.value = input
   }
//
// return values
//
return ({
   mod:mod,
   name:name,
   init:init,
   inputs:inputs,
   outputs:outputs,
   interface:interface
   })
}())
"""

GENERATE_MODULE = r"""(function(){
var mod = {}
var name = 'generate event'
var init = function() {}
var inputs = {}
var outputs = {
   output:{type:'event',
      event:function(){
         mods.output(mod,'output',true)}}}
return ({
   mod:mod,
   name:name,
   init:init,
   inputs:inputs,
   outputs:outputs
   })
}())
"""

LABEL_MODULE = r"""(function(){
var mod = {}
var name = 'label'
var init = function() {}
var inputs = {
   text:{type:'string',
      event:function(evt){
         mod.label.nodeValue = evt.detail}}}
var outputs = {}
return ({
   mod:mod,
   name:name,
   init:init,
   inputs:inputs,
   outputs:outputs
   })
}())
"""

BROKEN_MODULE = r"""(function(){
var mod = {}
var name = "foo"
var inputs = {
   data:{type:'number',
      event:function(evt){
         var x = ;
         }}}
var outputs = {
   result:{type:'number'}}
return ({name:name, inputs:inputs, outputs:outputs})
}())
"""


class FakePage(RenderedPage):
    """RenderedPage that serves canned DOM reads and records every call."""

    def __init__(self, raw_state=None, raw_program=None):
        self.raw_state = raw_state
        self.raw_program = raw_program
        self.evaluations = []
        self.navigations = []
        self.waits = []
        self.settles = []
        self.file_inputs = {}
        self.attached = []
        self.injected = None
        self.timeout_on = None
        self.download_on_click = None
        self.draw_links = True
        self.closed = False
        self._download_callbacks = []

    def navigate(self, url, timeout):
        self.navigations.append(url)

    def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        if script == READ_STATE_SCRIPT:
            return copy.deepcopy(self.raw_state)
        if script == READ_PROGRAM_SCRIPT:
            return copy.deepcopy(self.raw_program)
        if script == SET_CONTROL_SCRIPT:
            return self._set_control(arg)
        if script == CLICK_BUTTON_SCRIPT:
            return self._click(arg)
        if script == INJECT_PROGRAM_SCRIPT:
            self.injected = json.loads(arg['program'])
            self._render(self.injected)
            return True
        raise AssertionError(f"Unexpected script: {script[:40]}")

    def _render(self, program):
        self.raw_state = {
            'modules': [raw_module(module_id, '') for module_id in program['modules']],
            'links': list(program['links']) if self.draw_links else [],
        }

    def _module(self, module_id):
        for entry in (self.raw_state or {}).get('modules', []):
            if entry.get('id') == module_id:
                return entry
        return None

    def _set_control(self, arg):
        entry = self._module(arg['moduleId'])
        if entry is None or arg['index'] >= len(entry['controls']):
            return None
        control = entry['controls'][arg['index']]
        if control['type'] == 'checkbox':
            control['checked'] = arg['checked']
            return 'true' if control['checked'] else 'false'
        control['value'] = arg['value']
        return control['value']

    def _click(self, arg):
        entry = self._module(arg['moduleId'])
        if entry is None or arg['index'] >= len(entry['buttons']):
            return None
        if self.download_on_click is not None:
            self.emit_download(self.download_on_click)
        return entry['buttons'][arg['index']]

    def wait_until(self, predicate, timeout, condition=''):
        self.waits.append(condition)
        if condition == self.timeout_on:
            raise NavigationTimeoutError(f"Timed out waiting for {condition}", condition, timeout)

    def settle(self, seconds):
        self.settles.append(seconds)

    def locate_file_input(self, module_id):
        return self.file_inputs.get(module_id)

    def attach_file(self, handle, path):
        self.attached.append((handle, path))

    def on_download(self, callback):
        self._download_callbacks.append(callback)

    def emit_download(self, download):
        for callback in self._download_callbacks:
            callback(download)

    def close(self):
        self.closed = True


def control(label, value='', type='text', checked=False):
    return {'label': label, 'type': type, 'value': value, 'checked': checked}


def raw_module(module_id, name, controls=None, buttons=None):
    return {'id': module_id, 'name': name, 'controls': controls or [], 'buttons': buttons or []}


@pytest.fixture
def settings(tmp_path):
    return Settings(mods_dir=str(tmp_path), static_port=8123)


@pytest.fixture
def mods_storage(tmp_path):
    """A storage tree with a few modules and programs."""
    files = {
        'modules/ui/slider.js': SLIDER_MODULE,
        'modules/event/generate.js': GENERATE_MODULE,
        'modules/ui/label.js': LABEL_MODULE,
        'modules/ui/index.js': '// index',
        'modules/broken/broken.js': BROKEN_MODULE,
        'programs/machines/mill 2D PCB': '{"modules":{},"links":[]}',
        'programs/machines/.hidden': 'x',
        'programs/index.js': '// index',
    }
    for rel, content in files.items():
        full = tmp_path / rel
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(content, encoding='utf-8')
    return Storage(str(tmp_path))


@pytest.fixture
def page():
    return FakePage(raw_state={'modules': [], 'links': []})


@pytest.fixture
def session(page, settings):
    return Session(page, settings)
